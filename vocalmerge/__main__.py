"""Run the server: ``python -m vocalmerge``."""

import uvicorn

from vocalmerge.config import settings

if __name__ == "__main__":
    uvicorn.run("vocalmerge.api.server:app", host=settings.host, port=settings.port)
