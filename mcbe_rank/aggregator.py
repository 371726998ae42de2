"""
采集任务

每次采集把整个服务器列表作为一个批次探测，然后排名、
聚合插件使用情况并写出所有输出文件。
"""

import asyncio
import logging
import time as time_module
from collections import Counter, defaultdict
from datetime import datetime
from functools import partial
from typing import Callable, Dict, List, Optional, Tuple

from .config import AppConfig
from .models import Address, FleetTotals, PluginAggregate, PluginVersionCount, RunResult, ServerRecord
from .probe import ProbeClient, ProbeTransport
from .records import update_records
from .resolver import Resolver, deduplicate, lookup_ip, resolve_all
from .storage import FleetStore
from .utils import minute_timestamp

logger = logging.getLogger(__name__)


def rank_servers(servers: List[ServerRecord]) -> Tuple[List[ServerRecord], List[ServerRecord]]:
    """
    区分在线/离线服务器并分配排名

    在线服务器按 numplayers 从高到低排序，人数相同保持输入顺序。
    排名为 1..N，离线服务器为 -1。

    Returns:
        (按排名排序的在线服务器, 按输入顺序的离线服务器)
    """
    online = [s for s in servers if s.online]
    offline = [s for s in servers if not s.online]

    online.sort(key=lambda s: s.numplayers, reverse=True)
    for rank, server in enumerate(online, start=1):
        server.rank = rank
    for server in offline:
        server.rank = -1

    return online, offline


def aggregate_plugins(online: List[ServerRecord]) -> List[PluginAggregate]:
    """
    统计在线服务器的插件使用情况

    每台服务器的临时插件列表会被消费（置为 None）。

    Returns:
        每个插件一条聚合记录，使用最多的在前；版本列表按版本字符串降序
    """
    usage: Dict[str, Counter] = defaultdict(Counter)
    for server in online:
        for plugin in server.plugins or []:
            usage[plugin.name][plugin.version] += 1
        server.plugins = None

    aggregates = [
        PluginAggregate(
            plugin=name,
            servers=sum(versions.values()),
            versions=[
                PluginVersionCount(version=version, servers=versions[version])
                for version in sorted(versions, reverse=True)
            ],
        )
        for name, versions in usage.items()
    ]
    aggregates.sort(key=lambda p: p.servers, reverse=True)
    return aggregates


def compute_totals(
    online: List[ServerRecord],
    offline: List[ServerRecord],
    plugins: List[PluginAggregate],
) -> FleetTotals:
    return FleetTotals(
        numplayers=sum(s.numplayers for s in online),
        servers=len(online) + len(offline),
        online_servers=len(online),
        plugins=len(plugins),
    )


class FleetAggregator:
    """对配置的服务器集群执行采集"""

    def __init__(
        self,
        config: AppConfig,
        transport: Optional[ProbeTransport] = None,
        resolver: Optional[Resolver] = None,
        store: Optional[FleetStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            config: 应用配置
            transport: 探测实现，默认使用 mcstatus
            resolver: 异步域名解析函数，默认使用 getaddrinfo
            store: 文件存储，默认根据 config.files 创建
            clock: 返回当前本地时间
        """
        self.config = config
        self.store = store or FleetStore(config.files)
        self.client = ProbeClient.from_config(config.probe, transport)
        self.resolver = resolver or partial(lookup_ip, timeout=config.probe.resolve_timeout)
        self.clock = clock or datetime.now
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def process_server(self, address: Address, now: datetime, timestamp: int) -> ServerRecord:
        """加载、Ping、更新纪录并 Query 单台服务器"""
        server = await asyncio.to_thread(self.store.load_server, address)

        await self.client.ping(server, timestamp)
        update_records(server, now)
        server.last_update = timestamp

        await self.client.query(server)
        return server

    async def run(self) -> Optional[RunResult]:
        """
        执行一次采集

        上一次采集尚未结束时到达的触发会被跳过。

        Returns:
            本次采集结果，被跳过时返回 None
        """
        if self._lock.locked():
            logger.warning("Previous run still in progress, skipping this trigger")
            return None

        async with self._lock:
            return await self._run()

    async def _run(self) -> RunResult:
        now = self.clock()
        timestamp = minute_timestamp(now)
        started = time_module.monotonic()
        logger.info(f"Starting query at {now.isoformat(timespec='seconds')}")

        addresses = await asyncio.to_thread(self.store.load_addresses)
        resolved = await resolve_all(addresses, self.resolver)
        unique = deduplicate(resolved)
        logger.debug(f"Resolved {len(addresses)} addresses to {len(unique)} servers")

        # 并发探测所有服务器
        results = await asyncio.gather(
            *(self.process_server(address, now, timestamp) for address in unique),
            return_exceptions=True,
        )

        servers = []
        for address, result in zip(unique, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to process {address.key}: {result}", exc_info=result)
                continue
            servers.append(result)

        online, offline = rank_servers(servers)
        plugins = aggregate_plugins(online)
        totals = compute_totals(online, offline, plugins)

        await asyncio.to_thread(self.store.persist_run, timestamp, online, offline, plugins, totals)

        elapsed = time_module.monotonic() - started
        logger.info(
            f"Finished query: {totals.online_servers}/{totals.servers} online, "
            f"{totals.numplayers} players, {totals.plugins} plugins ({elapsed:.1f}s)"
        )
        return RunResult(time=timestamp, online=online, offline=offline, plugins=plugins, totals=totals)
