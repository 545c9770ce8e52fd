"""
Mock Shopify Admin API server for tests.

Simulates:
- GraphQL API with cursor pagination (customers, orders, products), nested
  order line item pages, per-order line item queries and a query cost limit
- REST resource endpoints with Link-header pagination
- REST customer detail endpoint
- Failure injection per protocol and resource, plus queued raw responses
"""

import json
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

RESOURCES = ("customers", "orders", "products")

_GRAPHQL_RESOURCE_RE = re.compile(r"\b(customers|orders|products)\(first")
_DETAIL_PATH_RE = re.compile(r"^customers/(?P<id>[^/]+)\.json$")
_GRAPHQL_ORDER_RE = re.compile(r"\border\(id:")

MAX_QUERY_COST = 1000


class MockShopifyServer:
    """
    Mock Shopify Admin API server.

    Usage:
        mock = MockShopifyServer()
        mock.graphql_data["customers"] = [{"id": "gid://shopify/Customer/1"}]
        mock.rest_data["orders"] = [{"id": 100}]
        mock.fail("graphql", "orders", status_code=500)
        client = ShopifyGraphQLClient(mock.shop, mock.access_token,
                                      transport=mock.get_mock_transport())
    """

    def __init__(
        self,
        shop: str = "test-store.myshopify.com",
        access_token: str = "shpat_test_access_token",
        api_version: str = "2024-01",
    ):
        self.shop = shop
        self.access_token = access_token
        self.api_version = api_version
        self.graphql_data: Dict[str, List[Dict[str, Any]]] = {r: [] for r in RESOURCES}
        self.rest_data: Dict[str, List[Dict[str, Any]]] = {r: [] for r in RESOURCES}
        self.customer_details: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self._failures: Dict[tuple, tuple] = {}
        self._queued: List[httpx.Response] = []

    @property
    def base_path(self) -> str:
        return f"/admin/api/{self.api_version}/"

    def fail(
        self,
        protocol: str,
        resource: str,
        status_code: int = 500,
        json_body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """Make every request for (protocol, resource) return the given response."""
        self._failures[(protocol, resource)] = (
            status_code,
            json_body or {"errors": "Internal Server Error"},
            headers or {},
        )

    def queue_response(self, response: httpx.Response) -> None:
        """Serve this response to the next request, before normal routing."""
        self._queued.append(response)

    def requests_for(self, protocol: str, resource: str) -> List[httpx.Request]:
        """Recorded requests for a protocol ('graphql' or 'rest') and resource."""
        return [r for r in self.requests if self._classify(r) == (protocol, resource)]

    def _classify(self, request: httpx.Request) -> tuple:
        path = request.url.path
        if not path.startswith(self.base_path):
            return (None, None)
        name = path[len(self.base_path):]
        if name == "graphql.json":
            try:
                query = json.loads(request.content or b"{}").get("query", "")
            except ValueError:
                return ("graphql", None)
            if _GRAPHQL_ORDER_RE.search(query):
                return ("graphql", "order_line_items")
            match = _GRAPHQL_RESOURCE_RE.search(query)
            return ("graphql", match.group(1) if match else None)
        if _DETAIL_PATH_RE.match(name):
            return ("rest", "customer_detail")
        return ("rest", name[:-len(".json")] if name.endswith(".json") else name)

    def _handle_graphql(self, request: httpx.Request, resource: str) -> httpx.Response:
        payload = json.loads(request.content)
        variables = payload.get("variables") or {}
        if resource == "order_line_items":
            return self._handle_order_line_items(variables)

        first = int(variables.get("first") or 50)
        offset = int(variables.get("after") or 0)
        line_items_first = variables.get("lineItemsFirst")

        if line_items_first is not None:
            # Nested connections cost roughly parent x child page sizes
            cost = first * (1 + int(line_items_first))
            if cost > MAX_QUERY_COST:
                return httpx.Response(200, json={"errors": [{
                    "message": f"Query cost is {cost}, which exceeds the single query "
                               f"max cost limit ({MAX_QUERY_COST}).",
                    "extensions": {"code": "MAX_COST_EXCEEDED", "cost": cost},
                }]})

        nodes = self.graphql_data[resource][offset:offset + first]
        if line_items_first is not None:
            nodes = [_page_line_items(node, int(line_items_first)) for node in nodes]
        has_next = offset + first < len(self.graphql_data[resource])
        return httpx.Response(200, json={
            "data": {
                resource: {
                    "edges": [{"node": node} for node in nodes],
                    "pageInfo": {
                        "hasNextPage": has_next,
                        "endCursor": str(offset + first) if has_next else None,
                    },
                }
            }
        })

    def _handle_order_line_items(self, variables: Dict[str, Any]) -> httpx.Response:
        order = next(
            (o for o in self.graphql_data["orders"] if o.get("id") == variables.get("id")),
            None,
        )
        if order is None:
            return httpx.Response(200, json={"data": {"order": None}})
        first = int(variables.get("first") or 50)
        offset = int(variables.get("after") or 0)
        return httpx.Response(200, json={
            "data": {"order": _page_line_items(order, first, offset)}
        })

    def _handle_rest_list(self, request: httpx.Request, resource: str) -> httpx.Response:
        params = request.url.params
        limit = int(params.get("limit", 50))
        offset = int(params.get("page_info", 0))

        items = self.rest_data[resource][offset:offset + limit]
        headers = {}
        if offset + limit < len(self.rest_data[resource]):
            query = urlencode({"limit": limit, "page_info": offset + limit})
            next_url = f"https://{self.shop}{self.base_path}{resource}.json?{query}"
            headers["Link"] = f'<{next_url}>; rel="next"'
        return httpx.Response(200, json={resource: items}, headers=headers)

    def _handle_customer_detail(self, customer_id: str) -> httpx.Response:
        if customer_id in self.customer_details:
            return httpx.Response(200, json={"customer": self.customer_details[customer_id]})
        for item in self.rest_data["customers"]:
            if str(item.get("id")) == customer_id:
                return httpx.Response(200, json={"customer": item})
        return httpx.Response(404, json={"errors": "Not Found"})

    def get_mock_transport(self) -> httpx.MockTransport:
        """
        Create an httpx MockTransport that routes requests to this mock server.
        """

        def handle_request(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)

            if request.headers.get("X-Shopify-Access-Token") != self.access_token:
                return httpx.Response(401, json={"errors": "Invalid API key or access token"})

            if self._queued:
                return self._queued.pop(0)

            protocol, resource = self._classify(request)
            if protocol is None or resource is None:
                return httpx.Response(404, json={"errors": "Not Found"})

            failure = self._failures.get((protocol, resource))
            if failure is not None:
                status_code, body, headers = failure
                return httpx.Response(status_code, json=body, headers=headers)

            if protocol == "graphql":
                return self._handle_graphql(request, resource)
            if resource == "customer_detail":
                name = request.url.path[len(self.base_path):]
                return self._handle_customer_detail(_DETAIL_PATH_RE.match(name).group("id"))
            if resource in RESOURCES:
                return self._handle_rest_list(request, resource)
            return httpx.Response(404, json={"errors": "Not Found"})

        return httpx.MockTransport(handle_request)


def graphql_customer(customer_id: str, **fields) -> Dict[str, Any]:
    """GraphQL customer node."""
    return {"id": f"gid://shopify/Customer/{customer_id}", **fields}


def graphql_order(
    order_id: str,
    customer_id: Optional[str] = None,
    total: str = "0.00",
    line_items: Optional[List[Dict[str, Any]]] = None,
    **fields,
) -> Dict[str, Any]:
    """GraphQL order node with nested line items."""
    node = {
        "id": f"gid://shopify/Order/{order_id}",
        "name": f"#{order_id}",
        "createdAt": "2024-01-15T10:30:00Z",
        "totalPriceSet": {"shopMoney": {"amount": total}},
        "customer": {"id": f"gid://shopify/Customer/{customer_id}"} if customer_id else None,
        "lineItems": {
            "edges": [
                {"node": {
                    "id": f"gid://shopify/LineItem/{item['id']}",
                    "title": item.get("title"),
                    "quantity": item.get("quantity", 1),
                    "originalUnitPriceSet": {"shopMoney": {"amount": item.get("price", "0.00")}},
                }}
                for item in (line_items or [])
            ]
        },
    }
    node.update(fields)
    return node


def graphql_product(product_id: str, price: Optional[str] = None, **fields) -> Dict[str, Any]:
    """GraphQL product node."""
    variants = [{"node": {"price": price}}] if price is not None else []
    return {
        "id": f"gid://shopify/Product/{product_id}",
        "variants": {"edges": variants},
        **fields,
    }


def _page_line_items(order: Dict[str, Any], first: int, offset: int = 0) -> Dict[str, Any]:
    """Copy of an order node with one page of its nested line items."""
    line_items = order.get("lineItems")
    if not isinstance(line_items, dict):
        return order
    edges = line_items.get("edges") or []
    has_next = offset + first < len(edges)
    return {
        **order,
        "lineItems": {
            "edges": edges[offset:offset + first],
            "pageInfo": {
                "hasNextPage": has_next,
                "endCursor": str(offset + first) if has_next else None,
            },
        },
    }
