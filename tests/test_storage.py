"""
单元测试：文件存储

测试覆盖：
- 快照读写，快照缺失或损坏
- 时间序列表头创建与追加
- 地址列表加载
- 写入失败交给 on_error
"""

import json
from pathlib import Path

from mcbe_rank.config import DataFiles
from mcbe_rank.models import Address, FleetTotals, ServerRecord
from mcbe_rank.storage import FleetStore

ADDRESS = Address(host="a.example.net", port=19132, ip="10.0.0.1", alias_hosts=["b.example.net"])


class TestSnapshots:

    def test_round_trip(self, store):
        server = ServerRecord.parse(
            {
                "online": True,
                "last_update": 28000000,
                "last_online": 28000000,
                "hostname": "Lobby",
                "version": "1.20.0",
                "server_engine": "PocketMine-MP 5.0",
                "maxplayers": 100,
                "numplayers": 42,
                "rank": 1,
                "daily_record": {"numplayers": 50},
                "weekly_record": {"numplayers": 60},
                "monthly_record": {"numplayers": 70},
                "players": ["Steve", "Alex"],
            },
            address=ADDRESS,
        )

        store.save_server(server)
        loaded = store.load_server(ADDRESS)

        assert loaded == server

    def test_snapshot_file_is_keyed_by_ip_and_port(self, store, files):
        store.save_server(ServerRecord.parse(None, address=ADDRESS))

        assert (Path(files.servers_dir) / "10.0.0.1_19132.json").exists()

    def test_missing_snapshot_gives_default(self, store):
        server = store.load_server(ADDRESS)

        assert server.address == ADDRESS
        assert server.last_update == -1

    def test_corrupt_snapshot_gives_default(self, store):
        store.server_path(ADDRESS).write_text("{not json", encoding="utf-8")

        server = store.load_server(ADDRESS)

        assert server.hostname == "a.example.net-19132"


class TestTimeSeries:

    def test_server_statistics_header_written_once(self, store):
        server = ServerRecord.parse({"numplayers": 3}, address=ADDRESS)

        store.append_server_statistics(server, 100)
        server.numplayers = 5
        store.append_server_statistics(server, 101)

        lines = store.server_statistics_path(ADDRESS).read_text(encoding="utf-8").splitlines()
        assert lines == ["time,numplayers", "100,3", "101,5"]

    def test_totals_file_and_row(self, store, files):
        totals = FleetTotals(numplayers=12, servers=3, online_servers=2, plugins=4)

        store.save_totals(totals, 100)

        assert json.loads(Path(files.total).read_text(encoding="utf-8")) == {
            "numplayers": 12, "servers": 3, "online_servers": 2, "plugins": 4,
        }
        lines = Path(files.total_statistics).read_text(encoding="utf-8").splitlines()
        assert lines == ["time,numplayers,online_servers", "100,12,2"]


class TestAddresses:

    def _write(self, files, payload):
        Path(files.addresses).write_text(payload, encoding="utf-8")

    def test_load_addresses(self, store, files):
        self._write(files, json.dumps([{"host": "a.example.net", "port": 19133}, {"host": "b.example.net"}]))

        addresses = store.load_addresses()

        assert [(a.host, a.port) for a in addresses] == [("a.example.net", 19133), ("b.example.net", 19132)]

    def test_missing_file_gives_empty_list(self, store):
        assert store.load_addresses() == []

    def test_invalid_json_gives_empty_list(self, store, files):
        self._write(files, "[{")

        assert store.load_addresses() == []

    def test_invalid_entries_are_skipped(self, store, files):
        self._write(files, json.dumps([{"port": 1}, {"host": "a.example.net", "port": "x"}, {"host": "ok"}]))

        assert [a.host for a in store.load_addresses()] == ["ok"]


def test_write_failure_goes_to_error_handler(tmp_path):
    errors = []
    # 目录从未创建，所有写入都会失败
    store = FleetStore(DataFiles.under(tmp_path / "missing"), on_error=lambda path, e: errors.append((path, e)))
    server = ServerRecord.parse({"online": True}, address=ADDRESS)

    store.persist_run(100, [server], [], [], FleetTotals(servers=1, online_servers=1))

    failed = {path.name for path, _ in errors}
    assert failed == {
        "10.0.0.1_19132.csv",
        "10.0.0.1_19132.json",
        "online_servers.json",
        "offline_servers.json",
        "plugins.json",
        "total.json",
        "total.csv",
    }
    assert all(isinstance(e, OSError) for _, e in errors)
