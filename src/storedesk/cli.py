from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path

import typer
from dateutil import parser as dt_parser
from rich import print

from storedesk.config import Settings
from storedesk.core.db import StoreRepository
from storedesk.core.errors import StoredeskError
from storedesk.core.fulfillment import ORDER_TRANSITIONS, PURCHASE_ORDER_TRANSITIONS, allowed_order_actions
from storedesk.core.logging import configure_logging, get_logger
from storedesk.core.normalize import OrderStatus, PurchaseOrderItem
from storedesk.services import (
    IngestionService,
    ShippingService,
    WorkflowService,
    assign_city,
    build_city_cache,
    export_orders,
    reconcile_manifest,
    resolve_pending_geography,
    run_doctor_checks,
)

app = typer.Typer(no_args_is_help=True, help="storedesk CLI: заказы WooCommerce и доставка Cathedis")
order_app = typer.Typer(no_args_is_help=True, help="Действия с заказами")
po_app = typer.Typer(no_args_is_help=True, help="Заказы поставщикам")
app.add_typer(order_app, name="order")
app.add_typer(po_app, name="po")


def _load_settings(base_dir: Path | None = None) -> Settings:
    settings = Settings.load(base_dir=base_dir)
    settings.ensure_directories()
    return settings


def _parse_since(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = dt_parser.parse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _fail(exc: Exception) -> typer.Exit:
    print(f"[red]Ошибка[/red]: {exc.__class__.__name__}: {exc}")
    return typer.Exit(1)


def _open(settings: Settings) -> tuple[StoreRepository, str]:
    correlation_id = uuid.uuid4().hex
    configure_logging(settings.logs_dir, correlation_id=correlation_id, console=False)
    repository = StoreRepository(settings.db_path)
    repository.migrate()
    return repository, correlation_id


@app.command("init")
def init_command(
    base_dir: Path | None = typer.Option(None, help="Корень проекта (по умолчанию текущая папка)"),
) -> None:
    settings = _load_settings(base_dir=base_dir)
    with StoreRepository(settings.db_path) as repository:
        executed = repository.migrate()
    print(f"[green]Инициализация завершена[/green]. DB: {settings.db_path}")
    print(f"Миграции: {executed if executed else 'нет новых'}")


@app.command("serve")
def serve_command(
    host: str = typer.Option("127.0.0.1", help="Адрес"),
    port: int = typer.Option(8000, help="Порт"),
) -> None:
    import uvicorn

    from storedesk.api import create_app

    settings = _load_settings()
    configure_logging(settings.logs_dir, correlation_id="server")
    if not settings.webhook_secret:
        print("[yellow]WOOCOMMERCE_WEBHOOK_SECRET не задан: все вебхуки будут отклонены[/yellow]")
    uvicorn.run(create_app(settings), host=host, port=port)


@app.command("sync")
def sync_command(
    since: str | None = typer.Option(None, help="Заказы созданные после этой даты"),
    until: str | None = typer.Option(None, help="Заказы созданные до этой даты"),
    status: str | None = typer.Option(None, help="Статус WooCommerce (processing, completed, ...)"),
) -> None:
    since_dt = _parse_since(since)
    until_dt = _parse_since(until)
    settings = _load_settings()
    repository, correlation_id = _open(settings)
    logger = get_logger("storedesk.sync", correlation_id)

    with repository:
        cache = build_city_cache(settings, repository, logger)
        cache.refresh_if_stale(settings.city_refresh_sec)
        service = IngestionService(settings, repository, cache, logger)
        try:
            stats = service.sync(since=since_dt, until=until_dt, status=status, correlation_id=correlation_id)
        except StoredeskError as exc:
            raise _fail(exc) from exc

    print(f"[green]Sync завершен[/green]. correlation_id={correlation_id}")
    for key, value in stats.items():
        print(f"- {key}: {value}")


@app.command("cities")
def cities_command(
    refresh: bool = typer.Option(True, "--refresh/--no-refresh", help="Загрузить справочник городов Cathedis"),
    resolve: bool = typer.Option(True, "--resolve/--no-resolve", help="Повторно разрешить города заказов"),
) -> None:
    settings = _load_settings()
    repository, correlation_id = _open(settings)
    logger = get_logger("storedesk.cities", correlation_id)

    with repository:
        cache = build_city_cache(settings, repository, logger)
        snapshot = cache.refresh() if refresh else cache.snapshot()
        print(f"Городов в справочнике: {len(snapshot)} (обновлён: {snapshot.fetched_at or 'никогда'})")
        if resolve:
            count = resolve_pending_geography(repository, cache, logger, threshold=settings.city_match_threshold)
            print(f"Разрешено городов в заказах: {count}")


@app.command("ship")
def ship_command(
    order_ids: list[str] = typer.Argument(None, help="Номера заказов"),
    all_orders: bool = typer.Option(False, "--all", help="Все подтверждённые заказы без отправления"),
    pickup: str | None = typer.Option(None, help="Точка забора: имя или id"),
    request_pickup: bool = typer.Option(False, "--request-pickup", help="Заказать забор после создания"),
    voucher: bool = typer.Option(False, "--voucher", help="Получить ссылку на накладную"),
) -> None:
    if not order_ids and not all_orders:
        raise typer.BadParameter("Укажите номера заказов или --all")

    settings = _load_settings()
    repository, correlation_id = _open(settings)
    logger = get_logger("storedesk.shipping", correlation_id)

    with repository:
        cache = build_city_cache(settings, repository, logger)
        service = ShippingService(settings, repository, cache, logger)
        try:
            if all_orders:
                outcomes = service.ship_eligible(pickup=pickup)
            else:
                outcomes = [service.ship_order(order_id, pickup=pickup) for order_id in order_ids]

            shipped = [outcome.order_id for outcome in outcomes if outcome.success]
            for outcome in outcomes:
                if outcome.success:
                    print(f"[green]OK[/green] {outcome.order_id}: {outcome.tracking_code} ({outcome.sort_code})")
                else:
                    print(f"[red]FAIL[/red] {outcome.order_id}: {outcome.message}")

            if shipped and request_pickup:
                count = service.request_pickup(shipped, pickup=pickup)
                print(f"Забор заказан для {count} отправлений")
            if shipped and voucher:
                print(f"Накладная: {service.voucher_url(shipped) or 'нет ссылки'}")
        except StoredeskError as exc:
            raise _fail(exc) from exc


@order_app.command("show")
def order_show_command(order_id: str) -> None:
    settings = _load_settings()
    with StoreRepository(settings.db_path) as repository:
        repository.migrate()
        order = repository.get_order(order_id)
    if order is None:
        raise _fail(KeyError(f"Заказ {order_id} не найден"))

    print(f"[bold]{order.id}[/bold] {order.status.value} {order.total} {order.currency or ''}")
    print(f"- клиент: {order.customer.name} {order.customer.phone}")
    city_note = " [yellow](не разрешён)[/yellow]" if order.geo_unresolved else ""
    print(f"- город: {order.customer.city} / {order.customer.sector or '-'}{city_note}")
    print(f"- отправление: {order.shipping_id or '-'}")
    print(f"- доступно: {', '.join(allowed_order_actions(order)) or '-'}")
    for entry in order.logs:
        print(f"  {entry.timestamp:%Y-%m-%d %H:%M} [{entry.type}] {entry.message} ({entry.user})")


@order_app.command("list")
def order_list_command(
    status: str | None = typer.Option(None, help=f"Статус: {', '.join(s.value for s in OrderStatus)}"),
) -> None:
    settings = _load_settings()
    try:
        status_value = OrderStatus(status) if status else None
    except ValueError as exc:
        raise typer.BadParameter(f"Недопустимый статус: {status}") from exc
    with StoreRepository(settings.db_path) as repository:
        repository.migrate()
        orders = repository.list_orders(status_value)
    for order in orders:
        flag = " [yellow]geo?[/yellow]" if order.geo_unresolved else ""
        print(f"- {order.id} {order.order_date} {order.status.value} {order.total} {order.customer.city}{flag}")
    print(f"Всего: {len(orders)}")


@order_app.command("action")
def order_action_command(
    order_id: str,
    action: str = typer.Argument(..., help=f"{', '.join(ORDER_TRANSITIONS)}, invoice"),
    user: str = typer.Option("System", help="Оператор"),
    note: str | None = typer.Option(None, help="Комментарий в лог"),
) -> None:
    settings = _load_settings()
    repository, correlation_id = _open(settings)
    with repository:
        service = WorkflowService(repository, get_logger("storedesk.workflow", correlation_id))
        try:
            if action == "invoice":
                order = service.invoice_downloaded(order_id, user=user)
            else:
                order = service.order_action(order_id, action, user=user, note=note)
        except (StoredeskError, ValueError) as exc:
            raise _fail(exc) from exc
    print(f"[green]{order.id}[/green]: {order.status.value}")


@order_app.command("set-city")
def order_set_city_command(
    order_id: str,
    city: str,
    sector: str | None = typer.Option(None, help="Сектор"),
    user: str = typer.Option("System", help="Оператор"),
) -> None:
    settings = _load_settings()
    repository, correlation_id = _open(settings)
    with repository:
        cache = build_city_cache(settings, repository, get_logger("storedesk.geography", correlation_id))
        try:
            order = assign_city(repository, cache, order_id, city, sector, user=user)
        except StoredeskError as exc:
            raise _fail(exc) from exc
    print(f"[green]{order.id}[/green]: {order.customer.city} / {order.customer.sector or '-'}")


def _parse_po_item(value: str) -> PurchaseOrderItem:
    product_id, _, rest = value.partition(":")
    quantity, _, price = rest.partition(":")
    try:
        return PurchaseOrderItem(product_id=product_id, quantity=int(quantity), buy_price=Decimal(price or "0"))
    except (ValueError, InvalidOperation) as exc:
        raise typer.BadParameter(f"Позиция должна быть PRODUCT:QTY:PRICE, получено {value!r}") from exc


@po_app.command("create")
def po_create_command(
    supplier_id: str,
    item: list[str] = typer.Option(..., "--item", help="PRODUCT:QTY:PRICE, можно несколько"),
    supplier_name: str | None = typer.Option(None, help="Имя поставщика"),
    user: str = typer.Option("System", help="Оператор"),
) -> None:
    items = [_parse_po_item(value) for value in item]
    settings = _load_settings()
    repository, correlation_id = _open(settings)
    with repository:
        service = WorkflowService(repository, get_logger("storedesk.workflow", correlation_id))
        purchase_order = service.create_purchase_order(supplier_id, items, supplier_name=supplier_name, user=user)
    print(f"[green]{purchase_order.id}[/green]: {purchase_order.status.value}, сумма {purchase_order.total}")


@po_app.command("action")
def po_action_command(
    purchase_order_id: str,
    action: str = typer.Argument(..., help=", ".join(PURCHASE_ORDER_TRANSITIONS)),
    user: str = typer.Option("System", help="Оператор"),
) -> None:
    settings = _load_settings()
    repository, correlation_id = _open(settings)
    with repository:
        service = WorkflowService(repository, get_logger("storedesk.workflow", correlation_id))
        try:
            purchase_order = service.purchase_order_action(purchase_order_id, action, user=user)
        except (StoredeskError, ValueError) as exc:
            raise _fail(exc) from exc
    print(f"[green]{purchase_order.id}[/green]: {purchase_order.status.value}")


@app.command("reconcile")
def reconcile_command(
    manifest: Path = typer.Argument(..., exists=True, dir_okay=False, help="Выгрузка Cathedis (csv или xlsx)"),
    user: str = typer.Option("System", help="Оператор"),
) -> None:
    settings = _load_settings()
    repository, correlation_id = _open(settings)
    with repository:
        try:
            report = reconcile_manifest(
                repository, manifest, get_logger("storedesk.reconcile", correlation_id), user=user
            )
        except ValueError as exc:
            raise _fail(exc) from exc

    print(f"[green]Сверка завершена[/green]: {manifest.name}")
    print(f"- строк: {report.rows}")
    print(f"- доставлено: {report.delivered}")
    print(f"- уже доставлено: {report.already_delivered}")
    print(f"- не доставлено: {report.not_delivered}")
    if report.unknown:
        print(f"- [yellow]неизвестные отправления[/yellow]: {', '.join(report.unknown)}")
    if report.skipped:
        print(f"- [yellow]пропущены[/yellow]: {', '.join(report.skipped)}")


@app.command("export")
def export_command(
    format: str = typer.Option("xlsx,csv", help="Список форматов через запятую: xlsx,csv"),
    out: Path | None = typer.Option(None, help="Папка экспорта"),
) -> None:
    formats = [item.strip().lower() for item in format.split(",") if item.strip()]
    unknown = [item for item in formats if item not in {"xlsx", "csv"}]
    if unknown:
        raise typer.BadParameter(f"Неподдерживаемые форматы: {unknown}")

    settings = _load_settings()
    out_dir = (out or settings.exports_dir).resolve()
    with StoreRepository(settings.db_path) as repository:
        repository.migrate()
        files = export_orders(repository=repository, formats=formats, out_dir=out_dir)

    print("[green]Экспорт завершен[/green]")
    for file_path in files:
        print(f"- {file_path}")


@app.command("doctor")
def doctor_command(
    online: bool = typer.Option(True, "--online/--offline", help="Проверять подключение к API"),
) -> None:
    settings = _load_settings()
    checks = run_doctor_checks(settings, online=online)

    print("Результаты doctor:")
    for check in checks:
        status = check["status"].upper()
        print(f"- [{status}] {check['check']}: {check['detail']}")


@app.command("dedupe")
def dedupe_command() -> None:
    settings = _load_settings()
    with StoreRepository(settings.db_path) as repository:
        repository.migrate()
        diagnostics = repository.duplicate_diagnostics()

    print("Диагностика дублей:")
    print(f"- одинаковые дата и сумма: {len(diagnostics['date_total'])}")
    for row in diagnostics["date_total"]:
        print(f"  {row['order_date']} {row['total']}: {row['order_ids']}")
    print(f"- повторный импорт: {len(diagnostics['markers'])}")
    for row in diagnostics["markers"]:
        print(f"  {row['message']}: {row['order_ids']}")


if __name__ == "__main__":
    app()
