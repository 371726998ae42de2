"""
数据模型定义

包括：
- 地址与持久化的 ServerRecord 结构
- 探测实现返回的结果
- 每次采集重建的集群聚合数据
"""

from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

DEFAULT_PORT = 19132

# 在线/离线服务器列表中公开的字段
PUBLIC_FIELDS = (
    "address",
    "online",
    "last_update",
    "last_online",
    "hostname",
    "version",
    "maxplayers",
    "numplayers",
    "rank",
    "daily_record",
)


# =============================================================================
# 地址
# =============================================================================

class Address(BaseModel):
    """配置的服务器端点"""
    model_config = ConfigDict(populate_by_name=True)

    host: str
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    ip: Optional[str] = None
    # 旧快照中别名字段为 "another_hosts"
    alias_hosts: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("alias_hosts", "another_hosts"),
    )

    @field_validator("port", mode="before")
    @classmethod
    def _default_port(cls, value: Any) -> Any:
        return DEFAULT_PORT if value is None else value

    @property
    def target(self) -> str:
        """实际探测的主机：有解析 IP 时使用 IP"""
        return self.ip or self.host

    @property
    def identity(self) -> Tuple[str, int]:
        """解析后为 (ip, port)，解析前为 (host, port)"""
        return (self.target, self.port)

    @property
    def key(self) -> str:
        return f"{self.target}:{self.port}"


# =============================================================================
# 服务器记录
# =============================================================================

class RollingRecord(BaseModel):
    """日历周期内的最大值"""
    numplayers: int = Field(default=0, ge=0)


class Plugin(BaseModel):
    """服务器插件清单中的一项"""
    name: str
    version: str = "undefined"


class ServerRecord(BaseModel):
    """单台物理服务器的持久化状态"""
    address: Address
    online: bool = False
    last_update: int = -1
    last_online: int = -1
    hostname: Optional[str] = None
    version: str = "Unknown"
    server_engine: str = "Unknown"
    maxplayers: int = Field(default=0, ge=0)
    numplayers: int = Field(default=0, ge=0)
    rank: int = -1
    daily_record: RollingRecord = Field(default_factory=RollingRecord)
    weekly_record: RollingRecord = Field(default_factory=RollingRecord)
    monthly_record: RollingRecord = Field(default_factory=RollingRecord)
    players: List[str] = Field(default_factory=list)

    # 仅在采集过程中由 Query 阶段设置，不写入磁盘
    plugins: Optional[List[Plugin]] = Field(default=None, exclude=True)

    @model_validator(mode="after")
    def _default_hostname(self) -> "ServerRecord":
        if self.hostname is None:
            self.hostname = f"{self.address.host}-{self.address.port}"
        return self

    @classmethod
    def parse(cls, data: Optional[Mapping[str, Any]], address: Optional[Address] = None) -> "ServerRecord":
        """
        从部分存储数据构建完整记录

        缺失字段使用默认值。存储值校验失败的字段逐个丢弃并使用默认值，
        因此旧版本或损坏的快照不会导致加载失败。

        Args:
            data: 存储的快照，可以为 None 或不完整
            address: 当前地址，提供时替换存储的地址

        Returns:
            字段齐全的 ServerRecord
        """
        payload = dict(data) if isinstance(data, Mapping) else {}
        if address is not None:
            payload["address"] = address

        while True:
            try:
                return cls.model_validate(payload)
            except ValidationError as e:
                bad_fields = {err["loc"][0] for err in e.errors() if err["loc"]}
                bad_fields &= payload.keys()
                if not bad_fields:
                    raise
                for field in bad_fields:
                    payload.pop(field)

    def simplify(self) -> dict:
        """公开视图，用于在线/离线服务器列表"""
        return self.model_dump(mode="json", include=set(PUBLIC_FIELDS))

    def snapshot(self) -> dict:
        """完整持久化形式（不含临时字段）"""
        return self.model_dump(mode="json")


# =============================================================================
# 探测
# =============================================================================

class ProbeKind(str, Enum):
    """探测阶段"""
    PING = "ping"
    QUERY = "query"


class ProbeResult(BaseModel):
    """探测实现返回的数据；响应中没有的字段保持 None"""
    kind: ProbeKind
    hostname: Optional[str] = None
    version: Optional[str] = None
    maxplayers: Optional[int] = None
    numplayers: Optional[int] = None
    server_engine: Optional[str] = None
    players: Optional[List[str]] = None
    plugins: Optional[str] = None


# =============================================================================
# 集群聚合
# =============================================================================

class PluginVersionCount(BaseModel):
    version: str
    servers: int


class PluginAggregate(BaseModel):
    """单个插件在在线服务器中的使用情况"""
    plugin: str
    servers: int = 0
    versions: List[PluginVersionCount] = Field(default_factory=list)


class FleetTotals(BaseModel):
    """一次采集的集群总计"""
    numplayers: int = 0
    servers: int = 0
    online_servers: int = 0
    plugins: int = 0


class RunResult(BaseModel):
    """一次采集的结果"""
    time: int
    online: List[ServerRecord] = Field(default_factory=list)
    offline: List[ServerRecord] = Field(default_factory=list)
    plugins: List[PluginAggregate] = Field(default_factory=list)
    totals: FleetTotals = Field(default_factory=FleetTotals)
