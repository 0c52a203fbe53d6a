"""
Interface metadata extraction.

Tests route decorators, parameter markers, binding inference and the
ContractError surface of the metadata resolver.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Annotated, Any, List, Optional, Protocol, TypeVar

import pytest

from talon.cancellation import CancellationToken
from talon.contract import (
    DELETE,
    GET,
    HEAD,
    POST,
    PUT,
    Body,
    BindingKind,
    Header,
    Path,
    Query,
    RequestPart,
    ReturnShape,
    api,
    headers,
    route,
    timeout,
)
from talon.contract.decorators import route_metadata
from talon.faults import ContractError

T = TypeVar("T")


@dataclass
class Account:
    id: str
    name: str


class Signature(RequestPart):
    def apply_to(self, request):
        request.set_header("X-Signature", "sig")


@api("/v1", headers={"Accept": "application/json"})
class Accounts:
    @GET("/accounts/{id}")
    def get(self, id: str) -> Account: ...

    @GET("/accounts")
    def search(self, q: str, limit: int = 10, tags: Optional[List[str]] = None) -> List[Account]: ...

    @POST("/accounts", headers={"X-Kind": "create"})
    async def create(self, account: Account, token: CancellationToken = None) -> Account: ...

    @DELETE("/accounts/{id}")
    def delete(self, id: str) -> None: ...

    def ping(self): ...

    def _helper(self):
        return "not part of the contract"


# ============================================================================
# Decorators
# ============================================================================

class TestDecorators:

    def test_route_metadata_attached(self):
        meta = route_metadata(Accounts.get)
        assert meta[0]["http_method"] == "GET"
        assert meta[0]["path"] == "/accounts/{id}"

    def test_undecorated_has_no_metadata(self):
        assert route_metadata(Accounts.ping) == []

    def test_generic_route_known_verb(self):
        @route("put", "/x")
        def f(self): ...
        assert route_metadata(f)[0]["http_method"] == "PUT"

    def test_generic_route_extension_verb(self):
        @route("PROPFIND", "/dav")
        def f(self): ...
        assert route_metadata(f)[0]["http_method"] == "PROPFIND"

    def test_api_metadata(self):
        assert Accounts.__api_metadata__ == {
            "prefix": "/v1",
            "headers": {"Accept": "application/json"},
        }

    def test_headers_closest_wins(self):
        @headers({"X-A": "outer", "X-B": "outer"})
        @headers({"X-A": "inner"})
        def f(self): ...
        assert f.__header_rules__ == {"X-A": "inner", "X-B": "outer"}

    def test_timeout(self):
        @timeout(5)
        def f(self): ...
        assert f.__timeout__ == 5.0


# ============================================================================
# Resolution
# ============================================================================

class TestResolution:

    def test_describe_interface(self, resolver):
        contract = resolver.describe_interface(Accounts)
        assert contract.identity.endswith(":Accounts")
        assert [m.name for m in contract.methods] == ["get", "search", "create", "delete", "ping"]
        assert contract.prefix == "/v1"

    def test_underscore_members_excluded(self, resolver):
        contract = resolver.describe_interface(Accounts)
        with pytest.raises(KeyError):
            contract.method("_helper")

    def test_path_binding(self, resolver):
        method = resolver.describe_interface(Accounts).method("get")
        assert method.http_method == "GET"
        assert method.route == "/v1/accounts/{id}"
        assert method.placeholders == ("id",)
        assert method.parameters[0].kind is BindingKind.PATH
        assert method.return_shape is ReturnShape.VALUE
        assert method.return_type is Account

    def test_query_inference(self, resolver):
        method = resolver.describe_interface(Accounts).method("search")
        kinds = {p.name: p.kind for p in method.parameters}
        assert kinds == {"q": BindingKind.QUERY, "limit": BindingKind.QUERY, "tags": BindingKind.QUERY}
        assert method.parameters[1].default == 10

    def test_body_and_cancel_inference(self, resolver):
        method = resolver.describe_interface(Accounts).method("create")
        kinds = {p.name: p.kind for p in method.parameters}
        assert kinds == {"account": BindingKind.BODY, "token": BindingKind.CANCEL}
        assert method.parameters[0].body_format == "json"
        assert method.return_shape is ReturnShape.DEFERRED

    def test_none_return_shape(self, resolver):
        method = resolver.describe_interface(Accounts).method("delete")
        assert method.return_shape is ReturnShape.NONE

    def test_undecorated_defaults_to_get_on_prefix(self, resolver):
        method = resolver.describe_interface(Accounts).method("ping")
        assert method.http_method == "GET"
        assert method.route == "/v1"
        assert method.return_type is Any

    def test_header_merge_order(self, resolver):
        method = resolver.describe_interface(Accounts).method("create")
        assert dict(method.headers) == {"Accept": "application/json", "X-Kind": "create"}

    def test_method_header_rules_override_route_headers(self, resolver):
        class Api:
            @headers({"X-Kind": "rule"})
            @GET("/", headers={"X-Kind": "route"})
            def f(self): ...

        method = resolver.describe_interface(Api).method("f")
        assert dict(method.headers) == {"X-Kind": "rule"}

    def test_explicit_markers(self, resolver):
        class Api:
            @PUT("/items/{item_id}")
            def put(
                self,
                identifier: Annotated[str, Path("item_id")],
                payload: Annotated[dict, Body(format="form")],
                x_trace_id: Annotated[str, Header()] = "",
                api_key: Annotated[str, Header("X-Api-Key")] = "",
                page: Annotated[int, Query("p")] = 1,
            ) -> None: ...

        params = {p.name: p for p in resolver.describe_interface(Api).method("put").parameters}
        assert params["identifier"].kind is BindingKind.PATH
        assert params["identifier"].alias == "item_id"
        assert params["payload"].body_format == "form"
        assert params["x_trace_id"].alias == "X-Trace-Id"
        assert params["api_key"].alias == "X-Api-Key"
        assert params["page"].alias == "p"

    def test_marker_class_without_call(self, resolver):
        class Api:
            @GET("/items")
            def f(self, q: Annotated[str, Query]): ...

        param = resolver.describe_interface(Api).method("f").parameters[0]
        assert param.kind is BindingKind.QUERY
        assert param.alias == "q"

    def test_passthrough_inference(self, resolver):
        class Api:
            @GET("/items")
            def f(self, sig: Signature): ...

        param = resolver.describe_interface(Api).method("f").parameters[0]
        assert param.kind is BindingKind.PASSTHROUGH

    def test_structured_type_on_get_is_query(self, resolver):
        class Api:
            @GET("/items")
            def f(self, filters: dict): ...

        param = resolver.describe_interface(Api).method("f").parameters[0]
        assert param.kind is BindingKind.QUERY

    def test_trailing_slash_kept(self, resolver):
        @api("/v1/")
        class Api:
            @GET("/items/")
            def f(self): ...

        assert resolver.describe_interface(Api).method("f").route == "/v1/items/"

    def test_absolute_route_ignores_prefix(self, resolver):
        @api("/v1")
        class Api:
            @GET("https://other.test/status")
            def f(self): ...

        assert resolver.describe_interface(Api).method("f").route == "https://other.test/status"

    def test_inherited_members(self, resolver):
        class Base:
            @GET("/base")
            def base(self): ...

        class Derived(Base):
            @GET("/derived")
            def derived(self): ...

        names = [m.name for m in resolver.describe_interface(Derived).methods]
        assert names == ["derived", "base"]

    def test_protocol_and_abc_interfaces(self, resolver):
        class ProtoApi(Protocol):
            @GET("/p")
            def f(self) -> dict: ...

        class AbcApi(ABC):
            @GET("/a")
            @abstractmethod
            def f(self) -> dict: ...

        assert resolver.describe_interface(ProtoApi).method("f").route == "/p"
        assert resolver.describe_interface(AbcApi).method("f").route == "/a"

    def test_bind_applies_defaults_and_keywords(self, resolver):
        method = resolver.describe_interface(Accounts).method("search")
        assert method.bind(("ada",), {}) == ("ada", 10, None)
        assert method.bind((), {"q": "ada", "tags": ["x"]}) == ("ada", 10, ["x"])

    def test_bind_rejects_bad_arguments(self, resolver):
        method = resolver.describe_interface(Accounts).method("get")
        with pytest.raises(TypeError):
            method.bind((), {})
        with pytest.raises(TypeError):
            method.bind(("1", "2"), {})

    def test_to_dict(self, resolver):
        data = resolver.describe_interface(Accounts).to_dict()
        get = data["methods"][0]
        assert get["http_method"] == "GET"
        assert get["return_type"] == "Account"
        assert get["parameters"][0] == {
            "position": 0, "name": "id", "type": "str", "kind": "path", "alias": "id",
        }


# ============================================================================
# Caching
# ============================================================================

class TestResolverCache:

    def test_resolution_cached(self, resolver):
        first = resolver.resolve(Accounts, Accounts.get)
        second = resolver.resolve(Accounts, Accounts.get)
        assert first is second
        assert resolver.resolutions == 1

    def test_contract_cached(self, resolver):
        assert resolver.describe_interface(Accounts) is resolver.describe_interface(Accounts)
        assert resolver.resolutions == 5

    def test_concurrent_first_use_resolves_once(self, resolver):
        barrier = threading.Barrier(8)
        results = []

        def worker():
            barrier.wait()
            results.append(resolver.resolve(Accounts, Accounts.search))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert resolver.resolutions == 1
        assert all(r is results[0] for r in results)

    def test_inherited_method_resolved_once(self, resolver):
        class Items:
            @GET("/items/{id}", headers={"X-Kind": "item"})
            def get(self, id: str) -> dict: ...

        @api("/left", headers={"X-Side": "left"})
        class Left(Items):
            pass

        @api("/right")
        class Right(Items):
            @GET("/items/{id}/parts")
            def parts(self, id: str, tenant: str) -> dict: ...

        left = resolver.describe_interface(Left).method("get")
        right = resolver.describe_interface(Right)

        assert resolver.resolutions == 2
        assert resolver.declaration(Items.get) is resolver.declaration(Items.get)
        assert left.route == "/left/items/{id}"
        assert left.interface.endswith("Left")
        assert dict(left.headers) == {"X-Side": "left", "X-Kind": "item"}
        assert right.method("get").route == "/right/items/{id}"
        assert [p.kind for p in right.method("parts").parameters] == [BindingKind.PATH, BindingKind.QUERY]

    def test_inherited_method_checked_per_interface(self, resolver):
        class Items:
            @GET("/items/{id}")
            def get(self, id: str) -> dict: ...

        @api("/tenants/{tenant}")
        class Scoped(Items):
            pass

        resolver.describe_interface(Items)
        with pytest.raises(ContractError) as exc_info:
            resolver.describe_interface(Scoped)
        assert exc_info.value.code == "ROUTE_PLACEHOLDER_UNBOUND"
        assert resolver.resolutions == 1

    def test_clear(self, resolver):
        resolver.describe_interface(Accounts)
        resolver.clear()
        assert resolver.resolutions == 0


# ============================================================================
# Contract errors
# ============================================================================

def _code(resolver, interface):
    with pytest.raises(ContractError) as exc_info:
        resolver.describe_interface(interface)
    return exc_info.value.code


class TestContractErrors:

    def test_none_interface(self, resolver):
        assert _code(resolver, None) == "INTERFACE_MISSING"

    def test_not_a_class(self, resolver):
        assert _code(resolver, Accounts()) == "INTERFACE_NOT_A_CLASS"

    def test_empty_interface(self, resolver):
        class Empty:
            pass
        assert _code(resolver, Empty) == "INTERFACE_EMPTY"

    def test_static_member(self, resolver):
        class Api:
            @staticmethod
            def f(): ...
        assert _code(resolver, Api) == "MEMBER_STATIC"

    def test_class_member(self, resolver):
        class Api:
            @classmethod
            def f(cls): ...
        assert _code(resolver, Api) == "MEMBER_STATIC"

    def test_property_member(self, resolver):
        class Api:
            @property
            def f(self): ...
        assert _code(resolver, Api) == "MEMBER_UNSUPPORTED"

    def test_data_attribute(self, resolver):
        class Api:
            base = "x"
        assert _code(resolver, Api) == "MEMBER_UNSUPPORTED"

    def test_generator_member(self, resolver):
        class Api:
            def f(self):
                yield 1
        assert _code(resolver, Api) == "MEMBER_UNSUPPORTED"

    def test_variadic_parameter(self, resolver):
        class Api:
            @GET("/x")
            def f(self, *args): ...
        assert _code(resolver, Api) == "PARAMETER_VARIADIC"

    def test_multiple_routes(self, resolver):
        class Api:
            @GET("/a")
            @POST("/b")
            def f(self): ...
        assert _code(resolver, Api) == "ROUTE_AMBIGUOUS"

    def test_unbound_placeholder(self, resolver):
        class Api:
            @GET("/accounts/{id}")
            def get(self, account_id: str) -> Account: ...
        assert _code(resolver, Api) == "ROUTE_PLACEHOLDER_UNBOUND"

    def test_placeholder_claimed_by_query_marker(self, resolver):
        class Api:
            @GET("/accounts/{id}")
            def get(self, id: Annotated[str, Query()]) -> Account: ...
        assert _code(resolver, Api) == "ROUTE_PLACEHOLDER_UNBOUND"

    def test_path_marker_without_placeholder(self, resolver):
        class Api:
            @GET("/accounts")
            def get(self, id: Annotated[str, Path()]) -> Account: ...
        assert _code(resolver, Api) == "ROUTE_PLACEHOLDER_MISSING"

    def test_conflicting_markers(self, resolver):
        class Api:
            @POST("/accounts/{id}")
            def f(self, id: Annotated[str, Path(), Query()]): ...
        assert _code(resolver, Api) == "BINDING_OVERLAP"

    def test_placeholder_bound_twice(self, resolver):
        class Api:
            @GET("/accounts/{id}")
            def f(self, id: str, other: Annotated[str, Path("id")]): ...
        assert _code(resolver, Api) == "BINDING_OVERLAP"

    def test_multiple_bodies(self, resolver):
        class Api:
            @POST("/accounts")
            def f(self, a: Account, b: Annotated[str, Body()]): ...
        assert _code(resolver, Api) == "BODY_MULTIPLE"

    @pytest.mark.parametrize("decorator", [GET, HEAD])
    def test_body_on_bodyless_verb(self, resolver, decorator):
        class Api:
            @decorator("/accounts")
            def f(self, a: Annotated[Account, Body()]): ...
        assert _code(resolver, Api) == "BODY_NOT_ALLOWED"

    def test_multiple_tokens(self, resolver):
        class Api:
            @GET("/x")
            def f(self, a: CancellationToken, b: CancellationToken): ...
        assert _code(resolver, Api) == "CANCEL_MULTIPLE"

    def test_generic_return(self, resolver):
        class Api:
            @GET("/x")
            def f(self) -> T: ...
        assert _code(resolver, Api) == "RETURN_GENERIC"

    def test_unresolvable_annotation(self, resolver):
        class Api:
            @GET("/x")
            def f(self) -> "DoesNotExist": ...  # noqa: F821
        assert _code(resolver, Api) == "ANNOTATION_INVALID"

    def test_error_names_member(self, resolver):
        class Api:
            @GET("/accounts/{id}")
            def get(self) -> Account: ...

        with pytest.raises(ContractError) as exc_info:
            resolver.describe_interface(Api)
        assert exc_info.value.member == "get"
        assert "Api.get" in exc_info.value.message
