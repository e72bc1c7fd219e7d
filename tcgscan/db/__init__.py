from tcgscan.db.database import async_session_factory, get_session, init_db
from tcgscan.db.operations import (
    acquire_lease,
    add_item,
    claim_item,
    complete_job_if_done,
    confirm_item,
    confirmable_items,
    create_job,
    delete_job,
    get_active_job,
    get_current_job,
    get_item,
    get_job,
    get_job_or_raise,
    record_identification,
    release_lease,
    update_item,
)

__all__ = [
    "acquire_lease",
    "add_item",
    "async_session_factory",
    "claim_item",
    "complete_job_if_done",
    "confirm_item",
    "confirmable_items",
    "create_job",
    "delete_job",
    "get_active_job",
    "get_current_job",
    "get_item",
    "get_job",
    "get_job_or_raise",
    "get_session",
    "init_db",
    "record_identification",
    "release_lease",
    "update_item",
]
