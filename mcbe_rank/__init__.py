"""
MCBE Rank - 服务器人数采集器

职责：
- 每分钟探测所有配置的服务器（先 Ping，再 Query）
- 记录每台服务器的日/周/月最高在线人数
- 对在线服务器排名并统计整个集群的插件使用情况
- 为网页前端写出 JSON 快照和 CSV 时间序列
"""

__version__ = "1.0.0"
