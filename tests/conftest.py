"""
共享 fixture：假传输层、假解析器、临时数据目录
"""

import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pytest

# 添加项目路径到 sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from mcbe_rank.config import AppConfig, DataFiles
from mcbe_rank.models import ProbeKind, ProbeResult
from mcbe_rank.storage import FleetStore


Reply = Union[ProbeResult, Exception]


class FakeTransport:
    """按 (kind, host, port) 查表应答的假传输层"""

    def __init__(self):
        self.replies: Dict[Tuple[ProbeKind, str, int], Reply] = {}
        self.calls: List[Tuple[ProbeKind, str, int, int, int]] = []

    def set_ping(self, host: str, port: int, reply: Optional[Reply] = None, **fields):
        self.replies[(ProbeKind.PING, host, port)] = reply or ProbeResult(kind=ProbeKind.PING, **fields)

    def set_query(self, host: str, port: int, reply: Optional[Reply] = None, **fields):
        self.replies[(ProbeKind.QUERY, host, port)] = reply or ProbeResult(kind=ProbeKind.QUERY, **fields)

    async def probe(self, kind, host, port, max_attempts, timeout_ms):
        self.calls.append((kind, host, port, max_attempts, timeout_ms))
        reply = self.replies.get((kind, host, port))
        if reply is None:
            raise ConnectionRefusedError(f"{host}:{port} did not answer")
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeResolver:
    """按固定表解析，未知域名返回 None"""

    def __init__(self, table: Optional[Dict[str, str]] = None):
        self.table = table or {}
        self.lookups: List[str] = []

    async def __call__(self, host: str) -> Optional[str]:
        self.lookups.append(host)
        return self.table.get(host)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def files(tmp_path) -> DataFiles:
    return DataFiles.under(tmp_path / "data")


@pytest.fixture
def store(files) -> FleetStore:
    store = FleetStore(files)
    store.ensure_directories()
    return store


@pytest.fixture
def config(files) -> AppConfig:
    return AppConfig(files=files)


@pytest.fixture
def resolver():
    return FakeResolver()
