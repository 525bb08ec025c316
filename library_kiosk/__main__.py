# =======================================================================================
# library_kiosk/__main__.py - `python -m library_kiosk`
# =======================================================================================
import uvicorn

from .config import config


def main():
    uvicorn.run("library_kiosk.main:app", host=config.API_HOST, port=config.API_PORT)


if __name__ == "__main__":
    main()
