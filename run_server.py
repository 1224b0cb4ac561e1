"""Flask server that stays alive"""

import logging
import sys

if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")

from greentech import create_app


def main() -> None:
    app = create_app()
    config = app.config["CONTAINER"].config

    print(f"Server starting on http://{config.api_host}:{config.api_port}")
    print("Press Ctrl+C to stop\n")

    try:
        # The reloader would start a second pipeline and a second broker link
        app.run(host=config.api_host, port=config.api_port, debug=config.DEBUG, use_reloader=False)
    except KeyboardInterrupt:
        print("\nServer stopped by user")
    finally:
        logging.getLogger(__name__).info("Server exiting")


if __name__ == "__main__":
    main()
