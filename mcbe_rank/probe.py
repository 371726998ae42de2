"""
服务器探测模块

两阶段探测：
1. Ping：轻量状态请求，成功率高
2. Query：完整信息（引擎、玩家、插件），仅在 Ping 成功后发起；
   很多服务器关闭了 Query，失败很常见，不影响在线状态
"""

import asyncio
import logging
import struct
from typing import List, Optional, Protocol

from mcstatus import BedrockServer, JavaServer

from .config import ProbeConfig
from .models import Plugin, ProbeKind, ProbeResult, ServerRecord

logger = logging.getLogger(__name__)

# 在 attempts * timeout 之外额外允许的时间，超过即放弃
DEADLINE_GRACE = 1.0

# 网络超时、拒绝连接以及畸形响应
PROBE_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    EOFError,
    ValueError,
    KeyError,
    IndexError,
    struct.error,
)


class ProbeTransport(Protocol):
    """发送实际的游戏协议请求，失败时抛出异常"""

    async def probe(
        self,
        kind: ProbeKind,
        host: str,
        port: int,
        max_attempts: int,
        timeout_ms: int,
    ) -> ProbeResult:
        ...


class McstatusTransport:
    """
    基于 mcstatus 的探测实现

    PING 使用 Bedrock unconnected ping，QUERY 使用 PocketMine 类服务器
    在游戏端口上响应的 GameSpy4 Query 协议。
    """

    async def probe(
        self,
        kind: ProbeKind,
        host: str,
        port: int,
        max_attempts: int,
        timeout_ms: int,
    ) -> ProbeResult:
        timeout = timeout_ms / 1000
        if kind is ProbeKind.PING:
            status = await BedrockServer(host, port, timeout=timeout).async_status(tries=max_attempts)
            return ProbeResult(
                kind=kind,
                hostname=status.motd.to_plain(),
                version=status.version.name,
                maxplayers=status.players.max,
                numplayers=status.players.online,
            )

        response = await self._query(JavaServer(host, port, timeout=timeout), max_attempts)
        raw = response.raw
        return ProbeResult(
            kind=kind,
            server_engine=raw.get("server_engine"),
            players=list(response.players.names),
            plugins=raw.get("plugins"),
        )

    async def _query(self, server: JavaServer, max_attempts: int):
        """
        发送 Query，最多尝试 max_attempts 次

        Raises:
            最后一次尝试的异常
        """
        last_error: Optional[BaseException] = None
        for attempt in range(1, max(max_attempts, 1) + 1):
            try:
                return await server.async_query()
            except PROBE_ERRORS as e:
                last_error = e
                logger.debug(f"Query attempt {attempt}/{max_attempts} failed: {e!r}")
        raise last_error


def parse_plugins(manifest: str) -> List[Plugin]:
    """
    解析 PocketMine 插件清单

    格式: "<引擎标识>: <名称> <版本>; <名称> <版本>; ..."

    Args:
        manifest: Query 响应中的原始 "plugins" 字段

    Returns:
        插件列表；没有插件段时返回空列表
    """
    _, separator, entries = manifest.partition(": ")
    if not separator:
        return []

    plugins = []
    for entry in entries.split("; "):
        if not entry.strip():
            continue
        name, _, version = entry.partition(" ")
        plugins.append(Plugin(name=name, version=version or "undefined"))
    return plugins


class ProbeClient:
    """对单台服务器执行 Ping 和 Query 并写回结果"""

    def __init__(
        self,
        transport: Optional[ProbeTransport] = None,
        ping_attempts: int = 3,
        query_attempts: int = 2,
        timeout_ms: int = 2000,
    ):
        self.transport = transport or McstatusTransport()
        self.ping_attempts = ping_attempts
        self.query_attempts = query_attempts
        self.timeout_ms = timeout_ms

    @classmethod
    def from_config(cls, config: ProbeConfig, transport: Optional[ProbeTransport] = None) -> "ProbeClient":
        return cls(
            transport=transport,
            ping_attempts=config.ping_attempts,
            query_attempts=config.query_attempts,
            timeout_ms=config.timeout_ms,
        )

    async def _probe(self, kind: ProbeKind, server: ServerRecord, attempts: int) -> ProbeResult:
        address = server.address
        deadline = attempts * self.timeout_ms / 1000 + DEADLINE_GRACE
        return await asyncio.wait_for(
            self.transport.probe(kind, address.target, address.port, attempts, self.timeout_ms),
            timeout=deadline,
        )

    async def ping(self, server: ServerRecord, timestamp: int) -> bool:
        """
        Ping 服务器并更新实时字段

        Args:
            server: 需要原地更新的记录
            timestamp: 当前分钟时间戳，写入 last_online

        Returns:
            服务器是否响应
        """
        try:
            result = await self._probe(ProbeKind.PING, server, self.ping_attempts)
        except PROBE_ERRORS as e:
            logger.debug(f"Ping failed for {server.address.key}: {e!r}")
            server.online = False
            server.numplayers = 0
            return False

        server.online = True
        server.last_online = timestamp
        if result.hostname is not None:
            server.hostname = result.hostname
        if result.version is not None:
            server.version = result.version
        if result.maxplayers is not None:
            server.maxplayers = result.maxplayers
        if result.numplayers is not None:
            server.numplayers = result.numplayers
        return True

    async def query(self, server: ServerRecord) -> bool:
        """
        向在线服务器查询引擎、玩家和插件

        失败时保留 Ping 的结果不变。

        Returns:
            Query 是否成功
        """
        if not server.online:
            return False

        try:
            result = await self._probe(ProbeKind.QUERY, server, self.query_attempts)
        except PROBE_ERRORS as e:
            logger.debug(f"Query failed for {server.address.key}: {e!r}")
            return False

        if result.server_engine is not None:
            server.server_engine = result.server_engine
        if result.players is not None:
            server.players = list(result.players)
        if result.plugins is not None:
            server.plugins = parse_plugins(result.plugins)
        return True
