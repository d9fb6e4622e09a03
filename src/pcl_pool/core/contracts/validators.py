"""
Schema contracts пула

Входящие сообщения (instantiate / execute / query / sudo) и persisted records
("config", "pool_state") проверяются по JSON Schema (Draft 2020-12) до того,
как из них строятся pydantic модели.

Схемы лежат в package data: pcl_pool/core/contracts/schema/<name>.json.
Нарушение схемы сообщения → InvalidParameters, нарушение схемы record'а
после миграции → MigrationError. В details ошибки кладётся JSON path
первого нарушения ("init_params/amp").
"""

import json
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterator, Optional

from jsonschema import Draft202012Validator, SchemaError, ValidationError
from jsonschema.exceptions import best_match

from pcl_pool.core.errors import InvalidParameters, MigrationError, PoolError

SCHEMA_DIR = Path(__file__).parent / "schema"


# =============================================================================
# SCHEMA LOADER
# =============================================================================


class SchemaLoader:
    """Чтение схем из каталога с кэшем по имени."""

    def __init__(self, schema_dir: Optional[Path] = None):
        self.schema_dir = schema_dir or SCHEMA_DIR
        if not self.schema_dir.is_dir():
            raise RuntimeError(f"Schema directory not found: {self.schema_dir}")
        self._cache: Dict[str, Dict[str, Any]] = {}

    def load_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Args:
            schema_name: имя файла без .json ("execute_msg")

        Raises:
            FileNotFoundError: файла нет
            ValueError: схема не проходит meta-validation
        """
        cached = self._cache.get(schema_name)
        if cached is not None:
            return cached

        path = self.schema_dir / f"{schema_name}.json"
        if not path.is_file():
            raise FileNotFoundError(f"Schema not found: {path}")

        schema = json.loads(path.read_text(encoding="utf-8"))
        try:
            Draft202012Validator.check_schema(schema)
        except SchemaError as exc:
            raise ValueError(
                f"{path.name} is not a valid Draft 2020-12 schema: {exc.message}"
            ) from exc

        self._cache[schema_name] = schema
        return schema


_LOADER = SchemaLoader()


# =============================================================================
# VALIDATORS
# =============================================================================


class ContractValidator:
    """
    Валидатор одной схемы.

    Подкласс задаёт schema_name и error_cls; check() переводит первую
    ValidationError в ошибку пула, validate() пробрасывает её как есть.
    """

    schema_name: ClassVar[str]
    error_cls: ClassVar[type[PoolError]] = InvalidParameters

    def __init__(self, loader: Optional[SchemaLoader] = None):
        self.schema = (loader or _LOADER).load_schema(self.schema_name)
        self.validator = Draft202012Validator(self.schema)

    def validate(self, data: Dict[str, Any]) -> None:
        self.validator.validate(data)

    def check(self, data: Dict[str, Any]) -> None:
        error = best_match(self.validator.iter_errors(data))
        if error is None:
            return
        path = "/".join(str(part) for part in error.absolute_path) or "<root>"
        raise self.error_cls(f"Invalid {self.schema_name}: {error.message}", path=path)

    def is_valid(self, data: Dict[str, Any]) -> bool:
        return self.validator.is_valid(data)

    def iter_errors(self, data: Dict[str, Any]) -> Iterator[ValidationError]:
        return self.validator.iter_errors(data)


class InstantiateMsgValidator(ContractValidator):
    schema_name = "instantiate_msg"


class ExecuteMsgValidator(ContractValidator):
    schema_name = "execute_msg"


class QueryMsgValidator(ContractValidator):
    schema_name = "query_msg"


class SudoMsgValidator(ContractValidator):
    schema_name = "sudo_msg"


class ConfigRecordValidator(ContractValidator):
    """Record "config" текущей версии."""

    schema_name = "config_record"
    error_cls = MigrationError


class PoolStateRecordValidator(ContractValidator):
    """Record "pool_state" текущей версии."""

    schema_name = "pool_state_record"
    error_cls = MigrationError


_VALIDATORS: Dict[type[ContractValidator], ContractValidator] = {}


def _validator(cls: type[ContractValidator]) -> ContractValidator:
    validator = _VALIDATORS.get(cls)
    if validator is None:
        validator = _VALIDATORS[cls] = cls()
    return validator


# =============================================================================
# ENTRY POINT HELPERS
# =============================================================================


def validate_instantiate_msg(data: Dict[str, Any]) -> None:
    _validator(InstantiateMsgValidator).check(data)


def validate_execute_msg(data: Dict[str, Any]) -> None:
    _validator(ExecuteMsgValidator).check(data)


def validate_query_msg(data: Dict[str, Any]) -> None:
    _validator(QueryMsgValidator).check(data)


def validate_sudo_msg(data: Dict[str, Any]) -> None:
    _validator(SudoMsgValidator).check(data)


def validate_config_record(data: Dict[str, Any]) -> None:
    """
    Raises:
        MigrationError: record не соответствует текущей схеме
    """
    _validator(ConfigRecordValidator).check(data)


def validate_pool_state_record(data: Dict[str, Any]) -> None:
    """
    Raises:
        MigrationError: record не соответствует текущей схеме
    """
    _validator(PoolStateRecordValidator).check(data)
