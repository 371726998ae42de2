"""
地址解析与去重

把配置中的域名解析为 IPv4 地址，并合并指向同一 ip:port 的域名，
保证每台物理服务器只探测一次。
"""

import asyncio
import logging
import socket
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from .models import Address

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Awaitable[Optional[str]]]


async def lookup_ip(host: str, timeout: float = 5.0) -> Optional[str]:
    """
    把域名解析为 IPv4 地址

    Args:
        host: 域名或 IP 字面量
        timeout: 解析超时时间（秒）

    Returns:
        第一个 IPv4 地址，解析失败时返回 None
    """
    try:
        infos = await asyncio.wait_for(
            asyncio.to_thread(socket.getaddrinfo, host, None, socket.AF_INET, socket.SOCK_DGRAM),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning(f"DNS lookup timed out for {host}")
        return None
    except OSError as e:
        logger.warning(f"DNS lookup failed for {host}: {e}")
        return None

    for family, _type, _proto, _canon, sockaddr in infos:
        if family == socket.AF_INET:
            return sockaddr[0]
    return None


async def resolve_address(address: Address, resolver: Resolver) -> Address:
    """返回带有解析 IP 的地址副本（解析失败时不变）"""
    try:
        ip = await resolver(address.host)
    except Exception as e:
        logger.warning(f"Resolver error for {address.host}: {e}")
        ip = None

    if ip is None:
        return address.model_copy()
    return address.model_copy(update={"ip": ip})


async def resolve_all(addresses: Iterable[Address], resolver: Resolver) -> List[Address]:
    """并发解析所有地址，保持输入顺序"""
    return list(await asyncio.gather(*(resolve_address(a, resolver) for a in addresses)))


def deduplicate(addresses: Iterable[Address]) -> List[Address]:
    """
    合并 ip:port 相同的地址

    没有 IP 的地址按 host:port 分组。每组第一个地址作为规范地址，
    后续成员的 host 追加到它的 alias_hosts。

    Args:
        addresses: 按配置顺序排列的已解析地址

    Returns:
        每个端点一个地址，保持首次出现的顺序
    """
    groups: Dict[Tuple[str, int], Address] = {}
    for address in addresses:
        canonical = groups.get(address.identity)
        if canonical is None:
            groups[address.identity] = address.model_copy(
                update={"alias_hosts": list(address.alias_hosts)}
            )
            continue

        for host in [address.host, *address.alias_hosts]:
            if host != canonical.host and host not in canonical.alias_hosts:
                canonical.alias_hosts.append(host)

    return list(groups.values())
