"""DocumentStoreClient 单元测试.

通过注入假传输节点，在真实的 NodeDispatcher 之上模拟一个内存中的文档存储，
覆盖索引生命周期、文档读写、搜索、批量写入和 create_indices 的配置组合。
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock
from urllib.parse import parse_qsl, unquote, urlsplit

import pytest
from elastic_transport import ConnectionError as TransportConnectionError

from elasticrelay.bulk import BulkListener
from elasticrelay.client import (
    ClientSettings,
    DocumentStoreClient,
    StaticMappingSource,
    extract_major_version,
)
from elasticrelay.client.exceptions import (
    ClientNotStartedError,
    DocumentNotFoundError,
    IndexAlreadyExistsError,
    IndexNotFoundError,
    MappingNotFoundError,
    OperationFailedError,
    PipelineNotFoundError,
)
from elasticrelay.connection import (
    ClientRequestError,
    DispatchError,
    NodeDispatcher,
    TransportFailureError,
)
from elasticrelay.core import SearchRequest, TermQuery
from elasticrelay.exceptions import ConfigError

NODES = ["http://node1:9200", "http://node2:9200"]


# ============================================================
# 内存文档存储
# ============================================================


def make_response(status: int, body=None) -> SimpleNamespace:
    data = b"" if body is None else json.dumps(body).encode("utf-8")
    return SimpleNamespace(meta=SimpleNamespace(status=status), body=data)


def error_response(status: int, error_type: str, reason: str) -> SimpleNamespace:
    return make_response(
        status, {"error": {"type": error_type, "reason": reason}, "status": status}
    )


def index_not_found(index: str) -> SimpleNamespace:
    return error_response(404, "index_not_found_exception", f"no such index [{index}]")


class FakeStore:
    """内存中的文档存储，只实现客户端用到的接口."""

    def __init__(self, version: str = "7.17.3") -> None:
        self.version = version
        self.indices: dict[str, dict] = {}
        self.pipelines: set[str] = set()
        self.requests: list[tuple[str, str, bytes | None]] = []
        self.refresh_failures = 0
        # 文档ID -> 批量写入时还需拒绝的次数
        self.bulk_rejections: dict[str, int] = {}
        self.down = False
        self.closed = 0

    def node_class(self, config):
        return FakeStoreNode(self)

    def targets(self, method: str | None = None) -> list[str]:
        return [t for m, t, _ in self.requests if method is None or m == method]

    # ---- 路由 ----

    def handle(self, method: str, target: str, body: bytes | None) -> SimpleNamespace:
        self.requests.append((method, target, body))
        if self.down:
            raise TransportConnectionError("connection refused")

        split = urlsplit(target)
        params = dict(parse_qsl(split.query))
        parts = [unquote(part) for part in split.path.strip("/").split("/") if part]
        text = body.decode("utf-8") if body else None

        if not parts:
            return make_response(200, {"name": "node", "version": {"number": self.version}})
        if parts[:2] == ["_cluster", "health"]:
            return self._health(parts[2])
        if parts[0] == "_ingest":
            if parts[2] in self.pipelines:
                return make_response(200, {parts[2]: {"processors": []}})
            return make_response(404, {})
        if parts == ["_bulk"]:
            return self._bulk(text)
        if parts[-1] == "_refresh":
            return make_response(
                200, {"_shards": {"total": 2, "successful": 1, "failed": self.refresh_failures}}
            )
        if parts[-1] == "_search":
            return self._search(parts[0] if len(parts) == 2 else None, text, params)
        if len(parts) == 1:
            return self._index_api(method, parts[0], text)
        if len(parts) == 3 and parts[1] == "_doc":
            return self._doc_api(method, parts[0], parts[2], text, params)
        return error_response(400, "illegal_argument_exception", f"no handler for {target}")

    def _health(self, index: str) -> SimpleNamespace:
        if index not in self.indices:
            return index_not_found(index)
        return make_response(200, {"cluster_name": "test", "status": "yellow"})

    def _index_api(self, method: str, index: str, text: str | None) -> SimpleNamespace:
        if method == "PUT":
            if index in self.indices:
                return error_response(
                    400,
                    "resource_already_exists_exception",
                    f"index [{index}] already exists",
                )
            if index != index.lower():
                return error_response(
                    400, "invalid_index_name_exception", "must be lowercase"
                )
            self.indices[index] = {"settings": text, "docs": {}}
            return make_response(200, {"acknowledged": True, "index": index})
        if index not in self.indices:
            return index_not_found(index)
        if method == "DELETE":
            del self.indices[index]
            return make_response(200, {"acknowledged": True})
        return make_response(200, {index: {"settings": {}}})

    def _doc_api(self, method, index, doc_id, text, params) -> SimpleNamespace:
        docs = self.indices.setdefault(index, {"settings": None, "docs": {}})["docs"]
        if method == "PUT":
            version = docs[doc_id][0] + 1 if doc_id in docs else 1
            docs[doc_id] = (version, json.loads(text), params.get("pipeline"))
            return make_response(201, {"_id": doc_id, "_version": version, "result": "created"})
        if doc_id not in docs:
            return make_response(
                404, {"_index": index, "_id": doc_id, "found": False, "result": "not_found"}
            )
        if method == "HEAD":
            return make_response(200)
        if method == "DELETE":
            del docs[doc_id]
            return make_response(200, {"_id": doc_id, "result": "deleted"})
        version, source, _ = docs[doc_id]
        return make_response(
            200,
            {"_index": index, "_id": doc_id, "_version": version, "found": True, "_source": source},
        )

    def _search(self, index, text, params) -> SimpleNamespace:
        if index is not None and index not in self.indices:
            return index_not_found(index)
        body = json.loads(text) if text else {}
        size = body.get("size", 10)
        names = [index] if index else list(self.indices)
        term = body.get("query", {}).get("term")

        matches = []
        for name in names:
            for doc_id, (version, source, _) in self.indices[name]["docs"].items():
                if term and any(source.get(f) != v for f, v in term.items()):
                    continue
                hit = {"_index": name, "_id": doc_id, "_score": 1.0, "_source": source}
                if params.get("version") == "true":
                    hit["_version"] = version
                matches.append(hit)
        return make_response(
            200,
            {
                "took": 1,
                "hits": {"total": {"value": len(matches), "relation": "eq"}, "hits": matches[:size]},
            },
        )

    def _bulk(self, text: str) -> SimpleNamespace:
        lines = iter(text.rstrip("\n").split("\n"))
        items = []
        for line in lines:
            ((action, meta),) = json.loads(line).items()
            index, doc_id = meta["_index"], meta.get("_id")
            source = json.loads(next(lines)) if action == "index" else None
            if self.bulk_rejections.get(doc_id, 0) > 0:
                self.bulk_rejections[doc_id] -= 1
                items.append(
                    {
                        action: {
                            "_index": index,
                            "_id": doc_id,
                            "status": 429,
                            "error": {
                                "type": "es_rejected_execution_exception",
                                "reason": "queue full",
                            },
                        }
                    }
                )
                continue
            docs = self.indices.setdefault(index, {"settings": None, "docs": {}})["docs"]
            if action == "index":
                version = docs[doc_id][0] + 1 if doc_id in docs else 1
                docs[doc_id] = (version, source, meta.get("pipeline"))
                items.append({action: {"_index": index, "_id": doc_id, "status": 201}})
            else:
                status = 200 if docs.pop(doc_id, None) else 404
                items.append({action: {"_index": index, "_id": doc_id, "status": status}})
        has_errors = any("error" in next(iter(item.values())) for item in items)
        return make_response(200, {"took": 2, "errors": has_errors, "items": items})


class FakeStoreNode:
    def __init__(self, store: FakeStore) -> None:
        self.store = store

    def perform_request(self, method, target, body=None, headers=None, request_timeout=None):
        return self.store.handle(method, target, body)

    def close(self) -> None:
        self.store.closed += 1


# ============================================================
# 辅助 fixtures
# ============================================================


MAPPINGS = StaticMappingSource(
    {
        "_settings": '{"mappings": {"properties": {"content": {"type": "text"}}}}',
        "_settings_folder": '{"mappings": {"properties": {"path": {"type": "keyword"}}}}',
    }
)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


def make_client(store: FakeStore, mapping_source=MAPPINGS, listener=None, **settings) -> DocumentStoreClient:
    options = {"nodes": NODES, "flush_interval": None, "bulk_retry_delay": 0, "index": "docs"}
    options.update(settings)
    client_settings = ClientSettings(**options)
    dispatcher = NodeDispatcher(client_settings.nodes, node_class=store.node_class)
    return DocumentStoreClient(
        client_settings,
        mapping_source=mapping_source,
        dispatcher=dispatcher,
        listener=listener,
    )


@pytest.fixture
def client(store):
    client = make_client(store).start()
    yield client
    client.close()


# ============================================================
# 生命周期测试
# ============================================================


class TestLifecycle:
    """start / close 测试."""

    def test_extract_major_version(self) -> None:
        assert extract_major_version("7.17.3") == "7"
        assert extract_major_version("8") == "8"

    def test_start_caches_major_version(self, store) -> None:
        client = make_client(store)
        assert client.major_version is None
        client.start()
        assert client.major_version == "7"
        client.close()

    def test_start_is_idempotent(self, store) -> None:
        client = make_client(store)
        client.start()
        client.start()
        assert store.targets("GET").count("/") == 1
        client.close()

    def test_start_with_missing_pipeline(self, store) -> None:
        client = make_client(store, pipeline="attachment")
        with pytest.raises(PipelineNotFoundError, match="attachment"):
            client.start()

    def test_start_with_existing_pipeline(self, store) -> None:
        store.pipelines.add("attachment")
        client = make_client(store, pipeline="attachment").start()
        assert "/_ingest/pipeline/attachment" in store.targets("GET")
        client.close()

    def test_start_when_cluster_down(self, store) -> None:
        """测试集群不可达时传输错误原样抛出."""
        store.down = True
        with pytest.raises(TransportFailureError):
            make_client(store).start()

    def test_operations_require_start(self, store) -> None:
        client = make_client(store)
        with pytest.raises(ClientNotStartedError):
            client.index("docs", "1", {"a": 1})
        with pytest.raises(ClientNotStartedError):
            client.delete("docs", "1")
        with pytest.raises(ClientNotStartedError):
            client.flush()

    def test_close_flushes_and_releases_nodes(self, store) -> None:
        client = make_client(store).start()
        client.index("docs", "1", {"content": "pending"})

        client.close()

        assert "1" in store.indices["docs"]["docs"]
        assert store.closed == len(NODES)

    def test_close_is_idempotent(self, store) -> None:
        client = make_client(store).start()
        client.close()
        client.close()
        assert store.closed == len(NODES)

    def test_context_manager(self, store) -> None:
        with make_client(store).start() as client:
            client.index("docs", "1", {"content": "x"})
        assert "1" in store.indices["docs"]["docs"]


# ============================================================
# 索引管理测试
# ============================================================


class TestIndexLifecycle:
    """索引创建、检查、删除测试."""

    def test_create_index_then_exists(self, client, store) -> None:
        """测试创建不存在的索引后可以检测到."""
        assert client.is_existing_index("docs") is False
        assert client.create_index("docs") is True
        assert client.is_existing_index("docs") is True

    def test_create_index_sends_empty_settings(self, client, store) -> None:
        client.create_index("docs")
        put = [r for r in store.requests if r[0] == "PUT"][0]
        assert put[1:] == ("/docs", b"{}")

    def test_create_index_waits_for_health(self, client, store) -> None:
        client.create_index("docs")
        assert store.targets("GET")[-1] == "/_cluster/health/docs?wait_for_status=yellow&timeout=5s"

    def test_create_index_with_settings(self, client, store) -> None:
        client.create_index("docs", settings='{"settings": {"number_of_shards": 1}}')
        assert store.indices["docs"]["settings"] == '{"settings": {"number_of_shards": 1}}'

    def test_create_existing_index_fails(self, client) -> None:
        """测试重复创建时抛出已存在异常."""
        client.create_index("docs")
        with pytest.raises(IndexAlreadyExistsError) as exc_info:
            client.create_index("docs")
        assert isinstance(exc_info.value.__cause__, ClientRequestError)

    def test_create_existing_index_ignored(self, client, store) -> None:
        """测试 ignore_errors 时重复创建静默成功."""
        client.create_index("docs")
        assert client.create_index("docs", ignore_errors=True) is False
        assert client.is_existing_index("docs") is True

    def test_other_client_errors_propagate(self, client) -> None:
        """测试其他 4xx 错误不会被吞掉."""
        with pytest.raises(ClientRequestError) as exc_info:
            client.create_index("Docs", ignore_errors=True)
        assert exc_info.value.error_type == "invalid_index_name_exception"

    def test_wait_for_healthy_index(self, client) -> None:
        client.create_index("docs")
        assert client.wait_for_healthy_index("docs", timeout="1s") == "yellow"

    def test_is_existing_pipeline(self, client, store) -> None:
        store.pipelines.add("p1")
        assert client.is_existing_pipeline("p1") is True
        assert client.is_existing_pipeline("p2") is False

    def test_delete_index(self, client, store) -> None:
        client.create_index("docs")
        client.delete_index("docs")
        assert client.is_existing_index("docs") is False

    def test_delete_missing_index_is_ignored(self, client) -> None:
        client.delete_index("missing")

    def test_delete_index_not_acknowledged(self) -> None:
        dispatcher = MagicMock(spec=NodeDispatcher)
        dispatcher.delete.return_value = '{"acknowledged": false, "error": {"reason": "busy"}}'
        client = DocumentStoreClient(ClientSettings(), dispatcher=dispatcher)
        with pytest.raises(OperationFailedError, match="busy"):
            client.delete_index("docs")

    def test_refresh(self, client, store) -> None:
        client.refresh("docs")
        client.refresh()
        assert store.targets("POST") == ["/docs/_refresh", "/_refresh"]

    def test_refresh_with_failed_shards(self, client, store) -> None:
        store.refresh_failures = 1
        with pytest.raises(OperationFailedError):
            client.refresh("docs")


class TestCreateIndices:
    """create_indices 配置组合测试."""

    DOC_MAPPING = MAPPINGS.read("7", "_settings")
    FOLDER_MAPPING = MAPPINGS.read("7", "_settings_folder")

    def created_settings(self, store: FakeStore) -> dict:
        return {name: index["settings"] for name, index in store.indices.items()}

    def test_default_uses_both_mappings(self, store) -> None:
        client = make_client(store).start()
        client.create_indices()
        assert self.created_settings(store) == {
            "docs": self.DOC_MAPPING,
            "docs_folder": self.FOLDER_MAPPING,
        }

    def test_inner_object_with_json_support(self, store) -> None:
        """测试 JSON 作为内部对象写入时文档索引不使用映射."""
        client = make_client(store, add_as_inner_object=True, json_support=True).start()
        client.create_indices()
        assert self.created_settings(store) == {
            "docs": "{}",
            "docs_folder": self.FOLDER_MAPPING,
        }

    def test_inner_object_with_xml_support(self, store) -> None:
        client = make_client(store, add_as_inner_object=True, xml_support=True).start()
        client.create_indices()
        assert self.created_settings(store)["docs"] == "{}"

    def test_inner_object_without_json_or_xml(self, store) -> None:
        """测试没有开启 JSON/XML 解析时仍使用文档映射."""
        client = make_client(store, add_as_inner_object=True).start()
        client.create_indices()
        assert self.created_settings(store)["docs"] == self.DOC_MAPPING

    def test_json_support_without_inner_object(self, store) -> None:
        client = make_client(store, json_support=True).start()
        client.create_indices()
        assert self.created_settings(store)["docs"] == self.DOC_MAPPING

    def test_without_index_folders(self, store) -> None:
        client = make_client(store, index_folders=False).start()
        client.create_indices()
        assert self.created_settings(store)["docs_folder"] == "{}"

    def test_custom_folder_index(self, store) -> None:
        client = make_client(store, index_folder="folders").start()
        client.create_indices()
        assert set(store.indices) == {"docs", "folders"}

    def test_existing_indices_are_ignored(self, store) -> None:
        client = make_client(store).start()
        client.create_indices()
        client.create_indices()
        assert set(store.indices) == {"docs", "docs_folder"}

    def test_versioned_mapping(self, store) -> None:
        """测试按集群主版本号选择映射."""
        mappings = StaticMappingSource(
            {("6", "_settings"): '{"v": 6}', ("7", "_settings"): '{"v": 7}', "_settings_folder": "{}"}
        )
        client = make_client(store, mapping_source=mappings).start()
        client.create_indices()
        assert self.created_settings(store)["docs"] == '{"v": 7}'

    def test_missing_mapping_source(self, store) -> None:
        client = make_client(store, mapping_source=None).start()
        with pytest.raises(MappingNotFoundError):
            client.create_indices()

    def test_missing_index_name(self, store) -> None:
        client = make_client(store, index=None).start()
        with pytest.raises(ConfigError):
            client.create_indices()


# ============================================================
# 文档操作测试
# ============================================================


class TestDocuments:
    """文档读写测试."""

    def test_index_single_and_get(self, client, store) -> None:
        client.index_single("docs", "1", {"content": "hello"})
        hit = client.get("docs", "1")
        assert hit.index == "docs"
        assert hit.id == "1"
        assert hit.version == 1
        assert hit.source_as_map == {"content": "hello"}
        assert json.loads(hit.source) == {"content": "hello"}

    def test_index_single_with_pipeline(self, client, store) -> None:
        client.index_single("docs", "1", '{"content": "x"}', pipeline="attachment")
        assert store.targets("PUT") == ["/docs/_doc/1?pipeline=attachment"]
        assert store.indices["docs"]["docs"]["1"][2] == "attachment"

    def test_get_missing_document(self, client) -> None:
        client.create_index("docs")
        with pytest.raises(DocumentNotFoundError):
            client.get("docs", "missing")

    def test_exists(self, client) -> None:
        client.index_single("docs", "1", {"content": "x"})
        assert client.exists("docs", "1") is True
        assert client.exists("docs", "2") is False

    def test_delete_single(self, client) -> None:
        client.index_single("docs", "1", {"content": "x"})
        client.delete_single("docs", "1")
        assert client.exists("docs", "1") is False

    def test_delete_single_missing_document(self, client) -> None:
        """测试删除不存在的文档得到文档不存在异常，而不是传输错误."""
        client.create_index("docs")
        with pytest.raises(DocumentNotFoundError, match="docs/missing-id") as exc_info:
            client.delete_single("docs", "missing-id")
        assert not isinstance(exc_info.value, DispatchError)

    def test_delete_single_unexpected_result(self) -> None:
        dispatcher = MagicMock(spec=NodeDispatcher)
        dispatcher.delete.return_value = '{"result": "noop"}'
        client = DocumentStoreClient(ClientSettings(), dispatcher=dispatcher)
        with pytest.raises(OperationFailedError):
            client.delete_single("docs", "1")
        dispatcher.delete.assert_called_once_with("docs/_doc/1")


class TestBulkWrites:
    """批量写入测试."""

    def test_index_and_flush(self, client, store) -> None:
        client.index("docs", "1", {"content": "a"})
        client.index_raw_json("docs", "2", '{"content": "b"}', pipeline="p")
        assert store.targets("POST") == []

        result = client.flush()

        assert result.success == 2
        assert store.targets("POST") == ["/_bulk"]
        docs = store.indices["docs"]["docs"]
        assert docs["1"][1] == {"content": "a"}
        assert docs["2"][1:] == ({"content": "b"}, "p")

    def test_bulk_size_triggers_flush(self, store) -> None:
        client = make_client(store, bulk_size=2).start()
        client.index("docs", "1", {"n": 1})
        client.index("docs", "2", {"n": 2})
        assert store.targets("POST") == ["/_bulk"]
        client.close()

    def test_delete_via_bulk(self, client, store) -> None:
        client.index_single("docs", "1", {"content": "x"})
        client.delete("docs", "1")
        client.flush()
        assert client.exists("docs", "1") is False

    def test_rejected_items_are_retried(self, store) -> None:
        store.bulk_rejections = {"2": 1}
        listener = MagicMock(spec=BulkListener)
        client = make_client(store, listener=listener).start()
        for doc_id in ("1", "2", "3"):
            client.index("docs", doc_id, {"id": doc_id})

        result = client.flush()

        assert result.success == 3
        assert result.retried == 1
        assert set(store.indices["docs"]["docs"]) == {"1", "2", "3"}
        assert store.targets("POST") == ["/_bulk", "/_bulk"]
        listener.after_bulk.assert_called_once_with(1, result)
        client.close()

    def test_retry_exhausted_is_reported(self, store) -> None:
        store.bulk_rejections = {"1": 10}
        client = make_client(store, bulk_max_retries=1).start()
        client.index("docs", "1", {"id": "1"})

        result = client.flush()

        assert result.failed == 1
        assert result.errors[0].error_type == "es_rejected_execution_exception"
        client.close()

    def test_raw_bulk(self, client, store) -> None:
        response = client.bulk('{"index":{"_index":"docs","_id":"9"}}\n{"n":9}\n')
        assert json.loads(response)["errors"] is False
        assert "9" in store.indices["docs"]["docs"]

    def test_flush_with_empty_queue(self, client, store) -> None:
        assert client.flush() is None
        assert store.targets("POST") == []


# ============================================================
# 搜索测试
# ============================================================


class TestSearch:
    """search 测试."""

    def index_docs(self, client, count: int, status: str = "done") -> None:
        for i in range(count):
            client.index_single("docs", f"{status}-{i}", {"status": status, "n": i})

    def test_search_limited_by_size(self, client, store) -> None:
        """测试 5 个匹配文档、size=2 时总数为 5，返回 2 条."""
        self.index_docs(client, 5)
        self.index_docs(client, 3, status="todo")

        response = client.search(
            SearchRequest(index="docs", size=2, query=TermQuery("status", "done"))
        )

        assert response.total_hits == 5
        assert len(response.hits) == 2
        assert all(hit.source_as_map["status"] == "done" for hit in response.hits)
        assert all(hit.version == 1 for hit in response.hits)

    def test_search_request_target(self, client, store) -> None:
        self.index_docs(client, 1)
        client.search(SearchRequest(index="docs"))
        client.search(SearchRequest())
        assert store.targets("POST") == ["/docs/_search?version=true", "/_search?version=true"]

    def test_search_default_size(self, client) -> None:
        self.index_docs(client, 12)
        response = client.search(SearchRequest(index="docs"))
        assert response.total_hits == 12
        assert len(response.hits) == 10

    def test_search_missing_index(self, client) -> None:
        with pytest.raises(IndexNotFoundError, match="missing"):
            client.search(SearchRequest(index="missing"))


class TestLowLevelRequest:
    """perform_low_level_request 测试."""

    def test_perform_low_level_request(self, client) -> None:
        response = client.perform_low_level_request("GET")
        assert json.loads(response)["version"]["number"] == "7.17.3"

    def test_client_error_propagates(self, client) -> None:
        with pytest.raises(ClientRequestError):
            client.perform_low_level_request("GET", "_unknown/api/here/x")
