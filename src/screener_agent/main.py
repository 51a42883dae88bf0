from __future__ import annotations

import logging
from dataclasses import dataclass

from .broadcast import AlertBroadcaster, broadcaster
from .config import Config, load_config
from .connectors import FeedConnector, KiteConnector, UpstoxConnector
from .engine import AlertEngine
from .feed import FeedSupervisor
from .instruments import InstrumentDirectory
from .repository import AlertStore, SqliteAlertRepository, SupabaseAlertRepository
from .sink import AlertSink
from .state import SymbolStateStore


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    config: Config
    directory: InstrumentDirectory
    store: SymbolStateStore
    alert_store: AlertStore
    sink: AlertSink
    engine: AlertEngine
    supervisor: FeedSupervisor


def build_connector(config: Config) -> FeedConnector:
    if config.feed_provider == "kite":
        return KiteConnector(
            api_key=config.kite_api_key or "",
            access_token=config.kite_access_token or "",
            ws_url=config.kite_ws_url,
            ping_interval_seconds=config.ws_ping_interval_seconds,
        )

    return UpstoxConnector(
        access_token=config.upstox_access_token or "",
        authorize_url=config.upstox_authorize_url,
        ping_interval_seconds=config.ws_ping_interval_seconds,
    )


def build_alert_store(config: Config) -> AlertStore:
    if config.alert_store == "supabase":
        return SupabaseAlertRepository(
            base_url=config.supabase_url or "",
            service_key=config.supabase_service_key or "",
            table=config.alert_table,
            user_id=config.alert_user_id,
        )

    return SqliteAlertRepository(
        config.alert_db_path,
        table=config.alert_table,
        user_id=config.alert_user_id,
    )


def build_runtime(
    config: Config,
    *,
    connector: FeedConnector | None = None,
    alert_store: AlertStore | None = None,
    alert_broadcaster: AlertBroadcaster | None = None,
) -> Runtime:
    directory = InstrumentDirectory(config.watchlist)
    store = SymbolStateStore()
    alert_store = alert_store or build_alert_store(config)
    sink = AlertSink(
        store=alert_store,
        broadcaster=alert_broadcaster or broadcaster,
    )
    engine = AlertEngine(directory=directory, store=store, rules=config.rules, sink=sink)
    supervisor = FeedSupervisor(
        connector=connector or build_connector(config),
        engine=engine,
        reconnect_delay_seconds=config.reconnect_delay_seconds,
    )
    return Runtime(
        config=config,
        directory=directory,
        store=store,
        alert_store=alert_store,
        sink=sink,
        engine=engine,
        supervisor=supervisor,
    )


async def run(runtime: Runtime | None = None) -> None:
    runtime = runtime or build_runtime(load_config())
    config = runtime.config
    logger.info(
        "[Feed] Provider=%s instruments=%s rules=%s",
        config.feed_provider,
        len(runtime.directory),
        config.rules,
    )

    await runtime.sink.start()
    try:
        await runtime.supervisor.run()
    finally:
        await runtime.sink.stop()
        runtime.alert_store.close()
