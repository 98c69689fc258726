from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from finexa.application.cloud_setup import CloudSetupService, RemoteStoreFactory
from finexa.application.records_service import RecordsService
from finexa.application.session import SessionManager
from finexa.application.sync_orchestrator import SyncOrchestrator
from finexa.application.sync_service import SyncService
from finexa.application.sync_status import SyncStatusModel
from finexa.domain.models import CloudConfig
from finexa.domain.ports import CloudConfigStorePort, SyncNotifierPort
from finexa.infrastructure.db import get_connection
from finexa.infrastructure.local_config import CloudConfigStore
from finexa.infrastructure.local_store_sqlite import SQLiteLocalRecordStore
from finexa.infrastructure.migrations import run_migrations
from finexa.infrastructure.sheets_client import SheetsClient
from finexa.infrastructure.sheets_remote_store import SheetsRemoteStore

logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    store: SQLiteLocalRecordStore
    session: SessionManager
    status: SyncStatusModel
    orchestrator: SyncOrchestrator
    sync_service: SyncService
    records_service: RecordsService
    cloud_setup: CloudSetupService
    config: CloudConfig | None


ConnectionFactory = Callable[[], object]


def build_sheets_remote_store(config: CloudConfig) -> SheetsRemoteStore:
    return SheetsRemoteStore(SheetsClient(config.credentials_path, config.spreadsheet_id))


def build_container(
    connection_factory: ConnectionFactory = get_connection,
    config_store: CloudConfigStorePort | None = None,
    remote_store_factory: RemoteStoreFactory = build_sheets_remote_store,
    notifier: SyncNotifierPort | None = None,
) -> AppContainer:
    connection = connection_factory()
    run_migrations(connection)
    store = SQLiteLocalRecordStore(connection)

    config_store = config_store or CloudConfigStore()
    config = config_store.load()
    remote = remote_store_factory(config) if config is not None and config.is_complete else None
    if remote is None:
        logger.info("No cloud configuration found; running in local mode.")

    session = SessionManager(store, owner_id=config.owner_id if config else None)
    status = SyncStatusModel()
    orchestrator = SyncOrchestrator(store, status, remote)
    sync_service = SyncService(orchestrator, status, session, notifier)
    records_service = RecordsService(store, on_change=sync_service.refresh_pending)
    cloud_setup = CloudSetupService(config_store, remote_store_factory, on_remote_ready=orchestrator.attach_remote)

    return AppContainer(
        store=store,
        session=session,
        status=status,
        orchestrator=orchestrator,
        sync_service=sync_service,
        records_service=records_service,
        cloud_setup=cloud_setup,
        config=config,
    )
