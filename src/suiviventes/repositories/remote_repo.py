from __future__ import annotations

import logging
from typing import Iterable, Optional

import requests

from suiviventes.config import RemoteSettings
from suiviventes.domain.errors import RemoteBackendError
from suiviventes.domain.models import Sale, StockItem, StockMovement

log = logging.getLogger("suiviventes.storage")

SESSION_EXPIRED = "Session expired. Please log in again."
ACCESS_DENIED = "Access denied. You can only access your own data."
ALREADY_EXISTS = "This item already exists."
STILL_REFERENCED = "Cannot delete this item as it is referenced by other data."
UNEXPECTED = "An unexpected error occurred. Please try again."


def describe_remote_error(message: Optional[str], status: Optional[int] = None) -> str:
    """Map a backend error to the message shown to the user."""
    if status == 401:
        return SESSION_EXPIRED
    if not message:
        return UNEXPECTED
    lowered = message.lower()
    if "jwt" in lowered:
        return SESSION_EXPIRED
    if "row-level security" in lowered or "row level security" in lowered:
        return ACCESS_DENIED
    if "duplicate key" in lowered:
        return ALREADY_EXISTS
    if "foreign key" in lowered:
        return STILL_REFERENCED
    return message


def _error_message(response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return (response.text or "").strip() or None
    if isinstance(body, dict):
        for key in ("message", "msg", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return None


def sale_to_row(sale: Sale) -> dict:
    return {
        "id": sale.id,
        "date": sale.date,
        "client_name": sale.client_name,
        "product_name": sale.product_name,
        "quantity": sale.quantity,
        "unit_price": sale.unit_price,
        "total_amount": sale.total_amount,
        "payment_method": sale.payment_method,
        "notes": sale.notes,
        "seller": sale.seller,
        "register": sale.register,
        "category": sale.category,
    }


def stock_item_to_row(item: StockItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "category": item.category,
        "subcategory": item.subcategory,
        "current_stock": item.current_stock,
        "alert_threshold": item.alert_threshold,
        "initial_stock": item.initial_stock,
        "unit_price": item.unit_price,
    }


def movement_to_row(movement: StockMovement) -> dict:
    return {
        "id": movement.id,
        "date": movement.date,
        "product_id": movement.product_id,
        "type": movement.type,
        "quantity": movement.quantity,
        "reason": movement.reason,
        "register": movement.register,
        "seller": movement.seller,
    }


class RemoteRepository:
    """Row access to the hosted ``sales``/``stock_items``/``stock_movements`` tables.

    Every request carries the project key and the user's bearer token and is
    filtered on ``user_id``; the backend enforces the same isolation.
    """

    def __init__(self, settings: RemoteSettings, auth, http=None):
        self.settings = settings
        self.auth = auth
        self.http = http or requests.Session()

    def _headers(self, *, prefer: Optional[str] = None) -> dict:
        headers = {
            "apikey": str(self.settings.anon_key),
            "Authorization": f"Bearer {self.auth.access_token()}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(self, method: str, table: str, *, params: dict | None = None, payload=None, prefer: str | None = None):
        if not self.settings.enabled:
            raise RemoteBackendError("Remote backend is not configured.")
        url = self.settings.rest_url(table)
        try:
            response = self.http.request(
                method,
                url,
                params=params,
                json=payload,
                headers=self._headers(prefer=prefer),
                timeout=self.settings.timeout,
            )
        except requests.RequestException as exc:
            log.error("remote_request_failed method=%s table=%s error=%s", method, table, exc)
            raise RemoteBackendError(describe_remote_error(str(exc)), detail=str(exc)) from exc

        if response.status_code >= 400:
            detail = _error_message(response)
            log.error("remote_error method=%s table=%s status=%s detail=%s", method, table, response.status_code, detail)
            raise RemoteBackendError(
                describe_remote_error(detail, response.status_code),
                status=response.status_code,
                detail=detail,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _scope(self, **extra) -> dict:
        params = {"user_id": f"eq.{self.auth.require_user_id()}"}
        params.update(extra)
        return params

    def _select(self, table: str, order: str) -> list[dict]:
        rows = self._request("GET", table, params=self._scope(select="*", order=order))
        return list(rows or [])

    def _insert(self, table: str, rows: Iterable[dict], upsert: bool = False) -> None:
        user_id = self.auth.require_user_id()
        payload = [{**r, "user_id": user_id} for r in rows]
        if not payload:
            return
        # merge-duplicates turns a replayed id into an update
        prefer = "return=minimal,resolution=merge-duplicates" if upsert else "return=minimal"
        self._request("POST", table, payload=payload, prefer=prefer)

    def _update(self, table: str, row_id: str, values: dict) -> None:
        values = {k: v for k, v in values.items() if k != "id"}
        self._request("PATCH", table, params=self._scope(id=f"eq.{row_id}"), payload=values, prefer="return=minimal")

    def _delete(self, table: str, row_id: str) -> None:
        self._request("DELETE", table, params=self._scope(id=f"eq.{row_id}"), prefer="return=minimal")

    # ---------- Sales ----------
    def list_sales(self) -> list[Sale]:
        return [Sale.from_dict(r) for r in self._select("sales", "date.desc")]

    def insert_sales(self, sales: Iterable[Sale], upsert: bool = False) -> None:
        self._insert("sales", (sale_to_row(s) for s in sales), upsert=upsert)

    def update_sale(self, sale: Sale) -> None:
        self._update("sales", sale.id, sale_to_row(sale))

    def delete_sale(self, sale_id: str) -> None:
        self._delete("sales", sale_id)

    # ---------- Stock ----------
    def list_stock(self) -> list[StockItem]:
        return [StockItem.from_dict(r) for r in self._select("stock_items", "name.asc")]

    def insert_stock_items(self, items: Iterable[StockItem], upsert: bool = False) -> None:
        self._insert("stock_items", (stock_item_to_row(i) for i in items), upsert=upsert)

    def update_stock_item(self, item: StockItem) -> None:
        self._update("stock_items", item.id, stock_item_to_row(item))

    def delete_stock_item(self, item_id: str) -> None:
        self._delete("stock_items", item_id)

    # ---------- Movements ----------
    def list_movements(self) -> list[StockMovement]:
        return [StockMovement.from_dict(r) for r in self._select("stock_movements", "date.desc")]

    def insert_movements(self, movements: Iterable[StockMovement], upsert: bool = False) -> None:
        self._insert("stock_movements", (movement_to_row(m) for m in movements), upsert=upsert)
