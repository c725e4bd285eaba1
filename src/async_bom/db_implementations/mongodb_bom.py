# src/async_bom/db_implementations/mongodb_bom.py

import inspect
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from logging import LoggerAdapter
from typing import (Any, AsyncGenerator, Awaitable, Callable, Dict, Iterable,
                    List, Optional, Union)

# --- Motor Driver Import ---
import pymongo
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import PyMongoError
from pymongo.results import InsertOneResult, UpdateResult

# --- Framework Imports ---
from async_bom.base.exceptions import ConfigurationException
from async_bom.base.options import (DEFAULT_QUERY_TIMEOUT, DEFAULT_SIZE,
                                    Option, set_collection, set_database_name,
                                    set_default_size, set_mongo_client,
                                    set_query_timeout)
from async_bom.base.query import (Combinator, Fragment, Limit, Pagination,
                                  ResolvedQuery, Sort, calculate_offset,
                                  freeze_filter, resolve_filter, resolve_sort,
                                  total_pages)
from async_bom.base.utils import prepare_for_storage

DB_RECORD_TYPE = Dict[str, Any]
Consumer = Callable[[Any], Union[Any, Awaitable[Any]]]

base_logger = logging.getLogger("async_bom.db_implementations.mongodb_bom")


async def _invoke(consumer: Consumer, value: Any) -> Any:
    """Call a sync or async consumer and return its result."""
    result = consumer(value)
    if inspect.isawaitable(result):
        result = await result
    return result


class Bom:
    """
    Fluent MongoDB query builder bound to a single collection.

    Predicates, limits and sorting are accumulated through chained calls and
    resolved into a single filter when an operation executes. All network I/O
    is delegated to the Motor client; every operation runs inside its own
    ``pymongo.timeout`` scope.

    A Bom instance is mutated in place by its chained calls and is meant to
    serve one request from one task. Use `build()` to obtain an immutable
    snapshot of the resolved query.
    """

    def __init__(
        self,
        client: Optional[AsyncIOMotorClient] = None,
        database_name: str = "",
        collection_name: str = "",
        query_timeout: float = DEFAULT_QUERY_TIMEOUT,
        default_size: int = DEFAULT_SIZE,
    ):
        """
        Initialize the query builder.

        Args:
            client: An instance of AsyncIOMotorClient (required).
            database_name: The name of the MongoDB database.
            collection_name: The name of the MongoDB collection.
            query_timeout: Deadline in seconds applied to each operation.
            default_size: Page size used when a limit has no positive size.

        Raises:
            ConfigurationException: If the client is missing or a numeric
                option is not positive.
        """
        self._configure(
            [
                set_mongo_client(client),
                set_database_name(database_name),
                set_collection(collection_name),
                set_query_timeout(query_timeout),
                set_default_size(default_size),
            ]
        )

    @classmethod
    def new(cls, *options: Option) -> "Bom":
        """Build a Bom from functional options, e.g. ``Bom.new(set_mongo_client(c))``."""
        bom = cls.__new__(cls)
        bom._configure(options)
        return bom

    def _configure(self, options: Iterable[Option]) -> None:
        self._client: Optional[AsyncIOMotorClient] = None
        self._database_name = ""
        self._collection_name = ""
        self._query_timeout = DEFAULT_QUERY_TIMEOUT
        self._default_size = DEFAULT_SIZE
        self._condition: Any = None
        self._fragments: Dict[Combinator, List[Fragment]] = {
            combinator: [] for combinator in Combinator
        }
        self._pagination = Pagination(size=DEFAULT_SIZE)
        self._limit = Limit(page=1)
        self._sort: Optional[Sort] = None

        for option in options:
            option(self)

        if self._client is None:
            raise ConfigurationException("MongoDB client is required")

        self._logger = logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[{self._collection_name}]"
        )
        self._logger.debug(
            f"Query builder created (db: '{self._database_name}', "
            f"collection: '{self._collection_name}', "
            f"timeout: {self._query_timeout}s)"
        )

    # --- Properties ---

    @property
    def client(self) -> AsyncIOMotorClient:
        return self._client

    @property
    def database_name(self) -> str:
        return self._database_name

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @property
    def query_timeout(self) -> float:
        return self._query_timeout

    @property
    def default_size(self) -> int:
        return self._default_size

    @property
    def limit(self) -> Limit:
        return self._limit

    @property
    def sort(self) -> Optional[Sort]:
        return self._sort

    @property
    def condition(self) -> Any:
        return self._condition

    def fragments(self, combinator: Combinator) -> List[Fragment]:
        """Accumulated fragments for one combinator, in insertion order."""
        return list(self._fragments[combinator])

    # --- Fluent configuration ---

    def with_db(self, database_name: str) -> "Bom":
        self._database_name = database_name
        return self

    def with_coll(self, collection_name: str) -> "Bom":
        self._collection_name = collection_name
        return self

    def with_timeout(self, seconds: float) -> "Bom":
        if seconds <= 0:
            raise ConfigurationException(
                f"Query timeout must be positive, got {seconds!r}"
            )
        self._query_timeout = seconds
        return self

    def with_condition(self, condition: Any) -> "Bom":
        """Set a raw filter that replaces every accumulated predicate."""
        self._condition = condition
        return self

    def with_limit(self, limit: Limit) -> "Bom":
        self._limit = limit
        return self

    def with_sort(self, sort: Sort) -> "Bom":
        self._sort = sort
        return self

    # --- Predicates ---

    def _add(self, combinator: Combinator, field: str, value: Any) -> "Bom":
        self._fragments[combinator].append(Fragment(field, value))
        return self

    def where(self, field: str, value: Any) -> "Bom":
        return self._add(Combinator.AND, field, value)

    def or_where(self, field: str, value: Any) -> "Bom":
        return self._add(Combinator.OR, field, value)

    def in_where(self, field: str, value: Any) -> "Bom":
        """Match documents whose `field` is one of `value` (a list)."""
        return self._add(Combinator.IN, field, value)

    def not_(self, field: str, value: Any) -> "Bom":
        """Exclude documents where `field` equals `value`."""
        return self._add(Combinator.NOT, field, value)

    # --- Resolution ---

    def _resolve_filter(self) -> Any:
        return resolve_filter(self._fragments, self._condition)

    def build(self, paginate: bool = False) -> ResolvedQuery:
        """
        Resolve the current state into an immutable query.

        Args:
            paginate: Also resolve skip/limit from the limit directive and the
                sort specification.
        """
        query_filter = freeze_filter(self._resolve_filter())
        if not paginate:
            return ResolvedQuery(filter=query_filter)
        limit, offset = calculate_offset(
            self._limit.page, self._limit.size, self._default_size
        )
        return ResolvedQuery(
            filter=query_filter,
            skip=offset,
            limit=limit,
            sort=resolve_sort(self._sort),
        )

    def _update_pagination(self, total_count: int, query: ResolvedQuery) -> Pagination:
        """Record the page actually served by `query` and return a copy."""
        self._pagination.total_count = total_count
        self._pagination.size = query.limit
        self._pagination.current_page = query.skip // query.limit + 1
        self._pagination.total_pages = total_pages(total_count, query.limit)
        return replace(self._pagination)

    # --- Execution ---

    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[AsyncIOMotorCollection, None]:
        """
        Provides the target collection inside a deadline scope. Lets
        operational exceptions propagate to the caller.
        """
        collection = self._client[self._database_name][self._collection_name]
        with pymongo.timeout(self._query_timeout):
            yield collection

    def _handle_db_error(self, error: Exception, logger: LoggerAdapter, context: str) -> None:
        logger.error(
            f"MongoDB error during {context} on "
            f"'{self._database_name}.{self._collection_name}': {error}",
            exc_info=True,
        )
        raise error

    def _log(self, logger: Optional[LoggerAdapter]) -> Union[logging.Logger, LoggerAdapter]:
        return logger if logger is not None else self._logger

    async def insert_one(
        self, document: Any, logger: Optional[LoggerAdapter] = None
    ) -> InsertOneResult:
        logger = self._log(logger)
        db_doc = prepare_for_storage(document)
        logger.debug(f"Inserting document: {db_doc!r}")
        try:
            async with self._get_session() as collection:
                result = await collection.insert_one(db_doc)
        except PyMongoError as e:
            self._handle_db_error(e, logger, "insert_one")
        logger.info(f"Inserted document with _id '{result.inserted_id}'.")
        return result

    async def update_one(
        self, update: Any, logger: Optional[LoggerAdapter] = None
    ) -> UpdateResult:
        logger = self._log(logger)
        query = self.build()
        update_doc = prepare_for_storage(update)
        logger.debug(f"MongoDB update_one filter: {query.filter}, update: {update_doc}")
        try:
            async with self._get_session() as collection:
                result = await collection.update_one(query.filter, update_doc)
        except PyMongoError as e:
            self._handle_db_error(e, logger, "update_one")
        logger.info(
            f"Updated one document (matched: {result.matched_count}, "
            f"modified: {result.modified_count})."
        )
        return result

    async def find_one(
        self,
        consumer: Optional[Consumer] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> Any:
        """
        Find the first document matching the filter.

        The document (or None) is passed to `consumer` when given, and the
        consumer's return value is returned. Without a consumer the document
        itself is returned.
        """
        logger = self._log(logger)
        query = self.build()
        logger.debug(f"MongoDB find_one filter: {query.filter}")
        try:
            async with self._get_session() as collection:
                record_data: Optional[DB_RECORD_TYPE] = await collection.find_one(
                    query.filter
                )
        except PyMongoError as e:
            self._handle_db_error(e, logger, "find_one")
        if consumer is None:
            return record_data
        return await _invoke(consumer, record_data)

    async def find_one_and_delete(
        self, logger: Optional[LoggerAdapter] = None
    ) -> Optional[DB_RECORD_TYPE]:
        """Atomically delete the first match; returns it, or None if nothing matched."""
        logger = self._log(logger)
        query = self.build()
        logger.debug(f"MongoDB find_one_and_delete filter: {query.filter}")
        try:
            async with self._get_session() as collection:
                record_data = await collection.find_one_and_delete(query.filter)
        except PyMongoError as e:
            self._handle_db_error(e, logger, "find_one_and_delete")
        if record_data is None:
            logger.info("find_one_and_delete matched no document.")
        else:
            logger.info(f"Deleted document with _id '{record_data.get('_id')}'.")
        return record_data

    async def count(self, logger: Optional[LoggerAdapter] = None) -> int:
        logger = self._log(logger)
        query = self.build()
        logger.debug(f"MongoDB count filter: {query.filter}")
        try:
            async with self._get_session() as collection:
                count_val = await collection.count_documents(query.filter)
        except PyMongoError as e:
            self._handle_db_error(e, logger, "count")
        logger.info(f"Counted {count_val} document(s).")
        return int(count_val)

    async def _drain(
        self, cursor: Any, consumer: Consumer, logger: LoggerAdapter, context: str
    ) -> int:
        """
        Feed each cursor document to the consumer; always closes the cursor.

        Only cursor failures go through _handle_db_error; consumer exceptions
        propagate untouched, even when they are PyMongoErrors.
        """
        delivered = 0
        try:
            while True:
                try:
                    record_data = await anext(cursor)
                except StopAsyncIteration:
                    break
                except PyMongoError as e:
                    self._handle_db_error(e, logger, context)
                await _invoke(consumer, record_data)
                delivered += 1
        finally:
            await cursor.close()
        return delivered

    async def list(
        self, consumer: Consumer, logger: Optional[LoggerAdapter] = None
    ) -> None:
        """
        Stream every matching document to `consumer`, in arrival order.

        The first exception raised by the consumer stops iteration and
        propagates.
        """
        logger = self._log(logger)
        query = self.build()
        logger.debug(f"MongoDB list filter: {query.filter}")
        async with self._get_session() as collection:
            try:
                cursor = collection.find(query.filter)
            except PyMongoError as e:
                self._handle_db_error(e, logger, "list")
            delivered = await self._drain(cursor, consumer, logger, "list")
        logger.info(f"Listed {delivered} document(s).")

    async def list_with_pagination(
        self, consumer: Consumer, logger: Optional[LoggerAdapter] = None
    ) -> Pagination:
        """
        Stream one page of matching documents to `consumer`.

        Counts the documents matching the same filter first, then applies
        skip, limit and sort from the limit and sort directives. The count
        and the page are read separately and may disagree under concurrent
        writes.

        Returns:
            A snapshot of the pagination state for the listed page.
        """
        logger = self._log(logger)
        query = self.build(paginate=True)
        logger.debug(f"MongoDB paginated list query: {query}")
        find_kwargs: Dict[str, Any] = {"skip": query.skip, "limit": query.limit}
        if query.sort:
            find_kwargs["sort"] = query.sort
        async with self._get_session() as collection:
            try:
                total_count = await collection.count_documents(query.filter)
                cursor = collection.find(query.filter, **find_kwargs)
            except PyMongoError as e:
                self._handle_db_error(e, logger, "list_with_pagination")
            delivered = await self._drain(
                cursor, consumer, logger, "list_with_pagination"
            )
        pagination = self._update_pagination(int(total_count), query)
        logger.info(
            f"Listed {delivered} document(s), page {pagination.current_page}"
            f"/{pagination.total_pages} ({pagination.total_count} total)."
        )
        return pagination
