"""Shared service layer utilities."""

from typing import Any, TypeVar, Type
from sqlalchemy import inspect, update
from sqlmodel import Session

from app.exceptions import ConflictError, NotFoundError

T = TypeVar("T")


def get_or_404(
    session: Session,
    model_class: Type[T],
    entity_id: int,
    entity_name: str | None = None,
) -> T:
    """
    Retrieve an entity by ID or raise NotFoundError.

    More efficient than select().where() as it uses session.get() which
    checks the session identity map before querying the database.

    Parameters:
        session: Database session.
        model_class: SQLModel class to query.
        entity_id: Primary key value.
        entity_name: Optional custom name for error message (defaults to model class name).

    Returns:
        T: The retrieved entity instance.

    Raises:
        NotFoundError: If entity doesn't exist.

    Example:
        donation = get_or_404(session, Donation, donation_id)
    """
    entity = session.get(model_class, entity_id)
    if not entity:
        name = entity_name or model_class.__name__
        raise NotFoundError(name, entity_id)
    return entity


def primary_key_of(entity: Any) -> Any:
    """Return the primary key value of a mapped instance."""
    return inspect(entity).identity[0]


def compare_and_set(
    session: Session,
    entity: T,
    expected_status: Any,
    values: dict[str, Any],
    entity_name: str | None = None,
    *,
    expected: dict[str, Any] | None = None,
) -> T:
    """
    Conditionally write `values` onto `entity`.

    Issues ``UPDATE ... WHERE pk = :id AND status = :expected_status`` and
    checks that exactly one row matched. `expected` adds further column
    conditions for writes that leave the status unchanged. The caller commits;
    the row is only refreshed here so the in-memory instance reflects what was
    written.

    Parameters:
        session: Database session.
        entity: Persisted instance read earlier in the operation.
        expected_status: Status the caller validated against.
        values: Column values to write (usually including the new ``status``).
        entity_name: Optional name for the error message.
        expected: Other column values read earlier that must still hold.

    Returns:
        The refreshed entity.

    Raises:
        ConflictError: If another writer changed the status (or an `expected`
            column) since it was read.
    """
    model = type(entity)
    mapper = inspect(model)
    pk_column = mapper.primary_key[0]
    identifier = primary_key_of(entity)

    statement = (
        update(model)
        .where(pk_column == identifier)
        .where(model.status == expected_status)  # type: ignore[attr-defined]
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    for name, value in (expected or {}).items():
        column = getattr(model, name)
        statement = statement.where(
            column.is_(None) if value is None else column == value
        )
    result = session.exec(statement)  # type: ignore
    if result.rowcount != 1:
        session.rollback()
        raise ConflictError(entity_name or model.__name__, identifier)

    session.refresh(entity)
    return entity
