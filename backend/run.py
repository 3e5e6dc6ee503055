import os

import uvicorn


if __name__ == "__main__":
    reload_enabled = str(os.getenv("QUESTLINE_BACKEND_RELOAD", "0")).strip().lower() in {"1", "true", "yes", "on"}
    port = int(os.getenv("QUESTLINE_BACKEND_PORT", "8000"))
    uvicorn.run("questline.main:app", host="0.0.0.0", port=port, reload=reload_enabled)
