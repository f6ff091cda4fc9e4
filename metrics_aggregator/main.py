"""
主程序入口

启动两个并发任务：
1. 1s 快照生成循环
2. REST API 服务
"""

import asyncio
import logging
import sys
from pathlib import Path

import uvicorn

from . import __version__
from .aggregator import get_aggregator, run_ticker
from .config import get_config
from .models import utc_now
from .window_ring import get_ring


def setup_logging():
    """配置日志"""
    config = get_config()

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    if config.logging.file:
        log_path = Path(config.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)

    # 降低第三方库日志级别
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


async def run_api_server():
    """运行 API 服务器"""
    from .api.app import create_app

    config = get_config()
    app = create_app()

    server_config = uvicorn.Config(
        app=app,
        host=config.api.host,
        port=config.api.port,
        log_level="info",
        access_log=False
    )
    server = uvicorn.Server(server_config)
    await server.serve()


async def main():
    """主函数：初始化窗口并启动所有任务"""
    logger = logging.getLogger(__name__)

    setup_logging()
    logger.info("=" * 60)
    logger.info(f"Metrics Aggregator v{__version__}")
    logger.info("=" * 60)

    config = get_config()
    logger.info(f"Config loaded: API={config.api.host}:{config.api.port}")
    logger.info(f"Store backend: {config.store.backend}")

    # 启动时显式初始化一次，之后 record/tick 不再依赖惰性初始化
    ring = get_ring()
    ring.initialize(utc_now())
    logger.info(f"WindowRing initialized with {ring.window_count} buckets")

    aggregator = get_aggregator()

    logger.info("Starting concurrent tasks...")

    try:
        await asyncio.gather(
            run_ticker(aggregator),   # 1s 快照循环
            run_api_server()          # REST API 服务
        )
    except asyncio.CancelledError:
        logger.info("Tasks cancelled, shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        raise


def cli():
    """命令行入口"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested, exiting...")
        sys.exit(0)


if __name__ == "__main__":
    cli()
