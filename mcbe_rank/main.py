"""
MCBE Rank 主程序入口

按周期（默认每分钟）执行采集直到被中断，使用 --once 时只执行一次。
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from . import __version__
from .aggregator import FleetAggregator
from .config import AppConfig, LoggingConfig, ScheduleConfig, get_config, load_config
from .storage import FleetStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: LoggingConfig):
    """配置根日志记录器"""
    level = getattr(logging, config.level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(file_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)


def acquire_single_instance_lock(lock_path: Path):
    """
    确保同一数据目录只有一个采集器写入

    两个采集器会争用相同的快照和统计文件。

    Returns:
        打开的锁文件，需要在进程生命周期内保持打开

    Raises:
        RuntimeError: 其他实例已持有锁
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    # 以二进制模式锁定第一个字节，保证所有进程锁定同一区域
    handle = open(lock_path, "a+b")
    handle.seek(0)
    if handle.read(1) == b"":
        handle.write(b"0")
        handle.flush()
    handle.seek(0)

    try:
        if os.name == "nt":
            import msvcrt  # type: ignore

            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        else:
            import fcntl  # type: ignore

            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError as e:
        handle.close()
        raise RuntimeError(f"Another collector instance is already running (lock: {lock_path})") from e

    return handle


def seconds_until_next_run(now: datetime, interval: int, align: bool = True) -> float:
    """
    距下一个周期的等待时间

    align 为真时，周期落在自纪元起 interval 的整数倍上
    （默认 60 秒即每分钟开始时）。
    """
    if not align:
        return float(interval)
    remainder = now.timestamp() % interval
    return interval - remainder


async def run_scheduler(aggregator: FleetAggregator, schedule: ScheduleConfig):
    """
    每个周期触发一次采集

    采集以任务方式启动，较慢的采集不会推迟周期；
    上一次采集仍在进行时，聚合器自身会跳过本次触发。
    """
    logger.info(f"Starting scheduler (interval={schedule.interval}s, align={schedule.align})")
    pending = set()

    def _finished(task: asyncio.Task):
        pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Run failed", exc_info=task.exception())

    while True:
        wait_seconds = seconds_until_next_run(datetime.now(), schedule.interval, schedule.align)
        await asyncio.sleep(wait_seconds)

        task = asyncio.create_task(aggregator.run())
        pending.add(task)
        task.add_done_callback(_finished)


async def main(config: AppConfig, once: bool = False) -> int:
    """启动采集器，返回进程退出码"""
    setup_logging(config.logging)
    logger.info("=" * 60)
    logger.info(f"MCBE Rank collector v{__version__}")
    logger.info("=" * 60)
    logger.info(f"Address list: {config.files.addresses}")

    store = FleetStore(config.files)
    store.ensure_directories()

    try:
        lock_handle = acquire_single_instance_lock(Path(config.files.lock))
    except RuntimeError as e:
        logger.error(str(e))
        return 1

    aggregator = FleetAggregator(config, store=store)
    try:
        if once:
            await aggregator.run()
        else:
            await run_scheduler(aggregator, config.schedule)
    except asyncio.CancelledError:
        logger.info("Collector cancelled, shutting down...")
    finally:
        lock_handle.close()
    return 0


def cli(argv: Optional[list] = None):
    """命令行入口"""
    parser = argparse.ArgumentParser(prog="mcbe-rank", description="Collect MCBE server rankings")
    parser.add_argument("-c", "--config", help="Path to config.yaml")
    parser.add_argument("--once", action="store_true", help="Run a single collection and exit")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config) if args.config else get_config()
    except (ValidationError, yaml.YAMLError, OSError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        sys.exit(asyncio.run(main(config, once=args.once)))
    except KeyboardInterrupt:
        print("\nShutdown requested, exiting...")
        sys.exit(0)


if __name__ == "__main__":
    cli()
