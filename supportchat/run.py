"""Relay launcher: `python -m supportchat.run`."""
import uvicorn

from supportchat.config import get_config

if __name__ == "__main__":
    server = get_config().server
    uvicorn.run("supportchat.main:app", host=server.host, port=server.port)
