from dataclasses import replace
from functools import wraps
import logging
import sqlite3
import threading
from typing import Optional, Sequence

from . import errors
from .console import setup_logging
from .current import Current
from .errors import LedgerError
from .records import (
    CallContext,
    Metadata,
    Principal,
    Record,
    check_categories,
    check_fields,
    check_size,
    check_summary,
    check_uint,
)
from .settings import APP_NAME, Settings
from .store import Engine, MemEngine, SqliteEngine, Table

logger = logging.getLogger(APP_NAME)

TOTAL_RECORDS = "total_records"


def query(fn):
    """Run the method under the registry lock."""

    @wraps(fn)
    def wrapper(self: "BookRegistry", *args, **kwargs):
        with self.lock:
            return fn(self, *args, **kwargs)

    return wrapper


def mutation(fn):
    """Run the method under the registry lock and inside a storage transaction.

    If the method raises, none of its writes are kept."""

    @wraps(fn)
    def wrapper(self: "BookRegistry", *args, **kwargs):
        with self.lock:
            try:
                with self.engine.transaction():
                    return fn(self, *args, **kwargs)
            except LedgerError as e:
                logger.debug(f"{fn.__name__} rejected: {e}")
                raise

    return wrapper


class BookRegistry(Current):
    """Registry of ebook records, who owns them and who may read them.

    State is three tables and a counter:

    - ``records``: record id → `Record`
    - ``access``: (record id, principal) → access flag
    - ``reads``: record id → number of successful reads
    - ``meta["total_records"]``: the last assigned record id

    All of it is guarded by one lock, so each public method is atomic with respect to the others.
    """

    engine: Engine
    records: Table[int, Record]
    access: Table[tuple[int, str], bool]
    reads: Table[int, int]
    meta: Table[str, int]

    def __init__(
        self,
        engine: Optional[Engine] = None,
        *,
        system_principal: str = APP_NAME,
        admin_principal: str = "admin",
        cascade_delete: bool = False,
        strict_maintenance: bool = False,
    ):
        self.engine = engine or MemEngine()
        self.system_principal = Principal(system_principal)
        self.admin_principal = Principal(admin_principal)
        self.cascade_delete = cascade_delete
        self.strict_maintenance = strict_maintenance
        self.lock = threading.RLock()
        self.records = self.engine.table("records", int, Record)
        self.access = self.engine.table("access", tuple[int, str], bool)
        self.reads = self.engine.table("reads", int, int)
        self.meta = self.engine.table("meta", str, int)

    @classmethod
    def of_settings(cls, cfg: Settings):
        setup_logging(cfg.log_level)
        if cfg.database_mode == "sqlite":
            cfg.local_data_path.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(cfg.db_path, check_same_thread=False)
            engine = SqliteEngine(conn)
            logger.info(f"Opened registry database at {cfg.db_path}")
        else:
            engine = MemEngine()
        return cls(
            engine,
            system_principal=cfg.system_principal,
            admin_principal=cfg.admin_principal,
            cascade_delete=cfg.cascade_delete,
            strict_maintenance=cfg.strict_maintenance,
        )

    @classmethod
    def default(cls):
        return cls.of_settings(Settings.current())

    def close(self):
        self.engine.close()

    @property
    def total_records(self) -> int:
        """The number of records ever uploaded, including deleted ones."""
        return self.meta.get(TOTAL_RECORDS, 0)

    @query
    def __len__(self):
        return len(self.records)

    def _get(self, record_id: int) -> Record:
        try:
            return self.records.get(record_id)
        except KeyError:
            raise errors.not_found(record_id) from None

    def _owned(self, ctx: CallContext, record_id: int) -> Record:
        record = self._get(record_id)
        if record.owner != ctx.caller:
            raise errors.unauthorized(record_id, ctx.caller)
        return record

    def _purge(self, record_ids: set[int]) -> int:
        """Delete the grants and read counters of the given records in one pass over each table."""
        grants = [key for key in self.access.keys() if key[0] in record_ids]
        counters = [key for key in self.reads.keys() if key in record_ids]
        for key in grants:
            self.access.delete(key)
        for key in counters:
            self.reads.delete(key)
        return len(grants) + len(counters)

    ### Records

    @mutation
    def upload(
        self,
        ctx: CallContext,
        title: str,
        size: int,
        summary: str,
        categories: Sequence[str],
    ) -> int:
        """Register a new record owned by the caller and return its id.

        Ids are assigned sequentially from 1. The caller is granted access to the new record.
        """
        cs = check_fields(title, size, summary, categories)
        record_id = self.total_records + 1
        record = Record(
            title=title,
            owner=ctx.caller,
            size=size,
            created_at=ctx.height,
            summary=summary,
            categories=cs,
        )
        self.records.set(record_id, record)
        self.access.set((record_id, ctx.caller), True)
        self.meta.set(TOTAL_RECORDS, record_id)
        logger.debug(f"{ctx.caller} uploaded record {record_id} {title!r}")
        return record_id

    @mutation
    def update(
        self,
        ctx: CallContext,
        record_id: int,
        title: str,
        size: int,
        summary: str,
        categories: Sequence[str],
    ) -> bool:
        """Replace the title, size, summary and categories of a record. Owner only."""
        record = self._owned(ctx, record_id)
        cs = check_fields(title, size, summary, categories)
        self.records.set(
            record_id,
            replace(record, title=title, size=size, summary=summary, categories=cs),
        )
        logger.debug(f"{ctx.caller} updated record {record_id}")
        return True

    @mutation
    def transfer_ownership(
        self, ctx: CallContext, record_id: int, new_owner: Principal
    ) -> bool:
        """Make ``new_owner`` the owner of the record.

        Access grants are not touched: the new owner can only read if they already had a grant."""
        record = self._owned(ctx, record_id)
        self.records.set(record_id, replace(record, owner=new_owner))
        logger.debug(f"record {record_id} transferred from {ctx.caller} to {new_owner}")
        return True

    @mutation
    def delete(self, ctx: CallContext, record_id: int) -> bool:
        """Remove the record.

        Unless ``cascade_delete`` is set, its access grants and read counter are kept."""
        self._owned(ctx, record_id)
        self.records.delete(record_id)
        if self.cascade_delete:
            self._purge({record_id})
        logger.debug(f"{ctx.caller} deleted record {record_id}")
        return True

    @mutation
    def set_summary(self, ctx: CallContext, record_id: int, summary: str) -> bool:
        record = self._owned(ctx, record_id)
        check_summary(summary)
        self.records.set(record_id, replace(record, summary=summary))
        return True

    @mutation
    def set_file_size(self, ctx: CallContext, record_id: int, size: int) -> bool:
        record = self._owned(ctx, record_id)
        check_size(size)
        self.records.set(record_id, replace(record, size=size))
        return True

    @mutation
    def set_categories(
        self, ctx: CallContext, record_id: int, categories: Sequence[str]
    ) -> bool:
        record = self._owned(ctx, record_id)
        cs = check_categories(categories)
        self.records.set(record_id, replace(record, categories=cs))
        return True

    @mutation
    def set_upload_time(self, ctx: CallContext, record_id: int, upload_time: int) -> bool:
        """Overwrite the creation height of a record.

        Anyone may do this unless ``strict_maintenance`` is set, in which case only the owner can.
        """
        if self.strict_maintenance:
            record = self._owned(ctx, record_id)
        else:
            record = self._get(record_id)
        check_uint("upload_time", upload_time)
        if upload_time <= 0:
            raise errors.invalid_size("upload time must be positive", record_id)
        self.records.set(record_id, replace(record, created_at=upload_time))
        return True

    ### Access

    @mutation
    def grant_access(self, ctx: CallContext, record_id: int, user: Principal) -> bool:
        """Give ``user`` access to the record. Owner only.

        Raises ``exists`` if the user already has a grant; use `donate_access` to overwrite."""
        self._owned(ctx, record_id)
        if user == self.system_principal:
            raise errors.invalid_recipient(record_id, user)
        if not self.access.insert((record_id, user), True):
            raise errors.exists(record_id, f"{user} already has access to record {record_id}")
        logger.debug(f"{ctx.caller} granted {user} access to record {record_id}")
        return True

    @mutation
    def donate_access(
        self, ctx: CallContext, record_id: int, recipient: Principal
    ) -> bool:
        """Give ``recipient`` access to the record, overwriting any existing grant. Owner only.

        The owner can't donate to themselves."""
        self._owned(ctx, record_id)
        if recipient == ctx.caller:
            raise errors.invalid_recipient(record_id, recipient)
        self.access.set((record_id, recipient), True)
        logger.debug(f"{ctx.caller} donated access to record {record_id} to {recipient}")
        return True

    @mutation
    def revoke_access(self, ctx: CallContext, record_id: int, user: Principal) -> bool:
        """Remove the grant of ``user`` on the record. Owner only."""
        self._owned(ctx, record_id)
        if user == self.system_principal:
            raise errors.invalid_recipient(record_id, user)
        if (record_id, user) not in self.access:
            raise errors.access_error(record_id, f"{user} has no grant on record {record_id}")
        self.access.delete((record_id, user))
        logger.debug(f"{ctx.caller} revoked access of {user} to record {record_id}")
        return True

    @query
    def has_access(self, record_id: int, user: Principal) -> bool:
        """The access flag of ``user``, false when there is no grant.

        Does not check that the record exists."""
        return self.access.get((record_id, user), False)

    def check_access(self, ctx: CallContext, record_id: int) -> bool:
        return self.has_access(record_id, ctx.caller)

    @query
    def get_access_rights(self, record_id: int, user: Principal) -> bool:
        """The access flag of ``user``.

        Raises:
            LedgerError: ``not_found`` if there is no grant entry at all.
        """
        try:
            return self.access.get((record_id, user))
        except KeyError:
            raise errors.not_found(record_id, f"access entry for {user}") from None

    ### Reads

    @mutation
    def read_ebook(self, ctx: CallContext, record_id: int) -> bool:
        """Count a read of the record by the caller.

        The caller needs a true access flag; being the owner is not enough."""
        self._get(record_id)
        if not self.access.get((record_id, ctx.caller), False):
            raise errors.access_denied(record_id, ctx.caller)
        self.reads.set(record_id, self.reads.get(record_id, 0) + 1)
        return True

    @mutation
    def reset_read_count(self, ctx: CallContext, record_id: int) -> bool:
        """Set the read counter of the record to zero.

        Anyone may do this unless ``strict_maintenance`` is set, in which case only the owner can.
        """
        if self.strict_maintenance:
            self._owned(ctx, record_id)
        else:
            self._get(record_id)
        self.reads.set(record_id, 0)
        logger.debug(f"{ctx.caller} reset the read count of record {record_id}")
        return True

    @query
    def get_read_count(self, record_id: int) -> int:
        self._get(record_id)
        return self.reads.get(record_id, 0)

    ### Queries

    @query
    def get_metadata(self, record_id: int) -> Metadata:
        record = self._get(record_id)
        return Metadata.of_record(record_id, record, self.reads.get(record_id, 0))

    @query
    def get_owner(self, record_id: int) -> Principal:
        return self._get(record_id).owner

    def get_author(self, record_id: int) -> Principal:
        return self.get_owner(record_id)

    @query
    def get_upload_time(self, record_id: int) -> int:
        return self._get(record_id).created_at

    @query
    def is_owner(self, ctx: CallContext, record_id: int) -> bool:
        return self._get(record_id).owner == ctx.caller

    def check_admin_access(self, ctx: CallContext) -> bool:
        return ctx.caller == self.admin_principal

    ### Maintenance

    @mutation
    def purge_orphans(self, ctx: CallContext) -> int:
        """Remove access grants and read counters left behind by deleted records.

        Administrator only. Returns the number of entries removed."""
        if not self.check_admin_access(ctx):
            raise errors.admin_only(ctx.caller)
        live = set(self.records.keys())
        orphans = {k[0] for k in self.access.keys()} | set(self.reads.keys())
        orphans -= live
        n = self._purge(orphans)
        logger.debug(f"purged {n} orphaned entries for records {sorted(orphans)}")
        return n
