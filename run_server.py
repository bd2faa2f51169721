#!/usr/bin/env python3
"""Run the image annotation web server."""
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from annotation_tool.config import get_db_path, get_log_level, get_server_config


def main():
    import uvicorn

    logging.basicConfig(
        level=get_log_level(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    cfg = get_server_config()

    print(f"""
    ╔═══════════════════════════════════════════════════════╗
    ║           Image Annotation Tool Server                ║
    ╠═══════════════════════════════════════════════════════╣
    ║  URL: http://{cfg.host}:{cfg.port:<5}                            ║
    ║  API Docs: http://{cfg.host}:{cfg.port:<5}/docs                  ║
    ║  Hot Reload: {str(cfg.reload):<5}                              ║
    ╚═══════════════════════════════════════════════════════╝
    Database: {get_db_path()}
    """)

    uvicorn.run(
        "server.app:app",
        host=cfg.host,
        port=cfg.port,
        reload=cfg.reload,
    )


if __name__ == "__main__":
    main()
