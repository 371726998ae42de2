"""
文件存储

每台服务器的 JSON 快照和 CSV 时间序列，以及网页前端读取的集群级文件。
所有写入都是尽力而为：失败交给 on_error 回调处理，不会中断采集。
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional

from pydantic import ValidationError

from .config import DataFiles
from .models import Address, FleetTotals, PluginAggregate, ServerRecord

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[Path, Exception], None]

SERVER_STATISTICS_HEADER = "time,numplayers"
TOTAL_STATISTICS_HEADER = "time,numplayers,online_servers"


def log_file_error(path: Path, error: Exception):
    """默认错误处理：记录日志后继续"""
    logger.error(f"Failed to write {path}: {error}")


def _file_stem(address: Address) -> str:
    host, port = address.identity
    return f"{host}_{port}".replace("/", "_").replace("\\", "_").replace(":", "_")


class FleetStore:
    """读写采集器保存在磁盘上的所有数据"""

    def __init__(self, files: DataFiles, on_error: Optional[ErrorHandler] = None):
        """
        Args:
            files: 文件路径布局
            on_error: 写入失败时以 (path, exception) 调用
        """
        self.files = files
        self.on_error = on_error or log_file_error

    # =========================================================================
    # 路径
    # =========================================================================

    def server_path(self, address: Address) -> Path:
        return Path(self.files.servers_dir) / f"{_file_stem(address)}.json"

    def server_statistics_path(self, address: Address) -> Path:
        return Path(self.files.statistics_dir) / f"{_file_stem(address)}.csv"

    def ensure_directories(self):
        """创建数据目录（已存在时忽略）"""
        for directory in (
            Path(self.files.servers_dir),
            Path(self.files.statistics_dir),
            Path(self.files.online_servers).parent,
            Path(self.files.total_statistics).parent,
        ):
            directory.mkdir(parents=True, exist_ok=True)

    # =========================================================================
    # 读取
    # =========================================================================

    def load_addresses(self) -> List[Address]:
        """
        读取配置的地址列表

        Returns:
            按文件顺序的地址；文件缺失或无效时返回空列表
        """
        path = Path(self.files.addresses)
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            logger.error(f"Address list not found: {path}")
            return []
        except (OSError, ValueError) as e:
            logger.error(f"Invalid address list {path}: {e}")
            return []

        if not isinstance(raw, list):
            logger.error(f"Invalid address list {path}: expected a JSON array")
            return []

        addresses = []
        for entry in raw:
            try:
                addresses.append(Address.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Skipping invalid address {entry!r}: {e}")
        return addresses

    def load_server(self, address: Address) -> ServerRecord:
        """
        加载服务器快照

        快照缺失或无法读取时返回默认记录。存储的地址会被替换为传入的地址。
        """
        path = self.server_path(address)
        data = None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            pass
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable snapshot {path}: {e}")
        return ServerRecord.parse(data, address=address)

    # =========================================================================
    # 写入
    # =========================================================================

    def _write_json(self, path: Path, payload: Any):
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False)
        except OSError as e:
            self.on_error(path, e)

    def _append_row(self, path: Path, header: str, row: Iterable[Any]):
        try:
            new_file = not path.exists()
            with open(path, "a", encoding="utf-8") as f:
                if new_file:
                    f.write(header + "\n")
                f.write(",".join(str(value) for value in row) + "\n")
        except OSError as e:
            self.on_error(path, e)

    def save_server(self, server: ServerRecord):
        self._write_json(self.server_path(server.address), server.snapshot())

    def append_server_statistics(self, server: ServerRecord, time: int):
        self._append_row(
            self.server_statistics_path(server.address),
            SERVER_STATISTICS_HEADER,
            (time, server.numplayers),
        )

    def save_server_lists(self, online: List[ServerRecord], offline: List[ServerRecord]):
        self._write_json(Path(self.files.online_servers), [s.simplify() for s in online])
        self._write_json(Path(self.files.offline_servers), [s.simplify() for s in offline])

    def save_plugins(self, plugins: List[PluginAggregate]):
        self._write_json(Path(self.files.plugins), [p.model_dump(mode="json") for p in plugins])

    def save_totals(self, totals: FleetTotals, time: int):
        self._write_json(Path(self.files.total), totals.model_dump(mode="json"))
        self._append_row(
            Path(self.files.total_statistics),
            TOTAL_STATISTICS_HEADER,
            (time, totals.numplayers, totals.online_servers),
        )

    def persist_run(
        self,
        time: int,
        online: List[ServerRecord],
        offline: List[ServerRecord],
        plugins: List[PluginAggregate],
        totals: FleetTotals,
    ):
        """写出一次采集产生的所有文件"""
        for server in online:
            self.append_server_statistics(server, time)
            self.save_server(server)
        for server in offline:
            self.save_server(server)

        self.save_server_lists(online, offline)
        self.save_plugins(plugins)
        self.save_totals(totals, time)
