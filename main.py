from __future__ import annotations

import os

from schedulehub.app import app

if __name__ == "__main__":
  import uvicorn

  host = os.getenv("HOST", "0.0.0.0")
  port = int(os.getenv("PORT", "8000"))
  uvicorn.run(app, host=host, port=port)
