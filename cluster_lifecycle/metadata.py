"""Merging of inherited and user-entered deployment metadata."""

import re
from typing import Literal

from pydantic import BaseModel, Field

from cluster_lifecycle.logging_config import get_logger
from cluster_lifecycle.models.site import FieldError, MetadataPair

logger = get_logger(__name__)

LabelPrecedence = Literal["user", "inherited", "reject"]
LABEL_PRECEDENCES = ["user", "inherited", "reject"]

MAX_LABEL_LENGTH = 63

UPPER_CASE_PATTERN = re.compile(r"[A-Z]")
K8S_LABEL_PATTERN = re.compile(r"^[a-z0-9\-_./]*$")


class ErrorMessages:
    """Inline messages shown next to invalid metadata fields."""

    IS_REQUIRED = "Is Required"
    KEY_EXISTS = "Key already exists"
    KEY_INHERITED = "Key is already set by region or site metadata"
    NO_UPPER_CASE = "Must be lower case"
    INVALID_K8S_LABEL = "Only alphanumeric values and _ . - allowed"
    MAX_LENGTH_EXCEEDED = f"Maximum of {MAX_LABEL_LENGTH} characters allowed"


def check_label_text(text: str) -> str | None:
    """Validate a metadata key or value against the label rules.

    Returns:
        The first failing rule's message, or None when the text is valid
    """
    if UPPER_CASE_PATTERN.search(text):
        return ErrorMessages.NO_UPPER_CASE
    if not K8S_LABEL_PATTERN.match(text):
        return ErrorMessages.INVALID_K8S_LABEL
    if len(text) > MAX_LABEL_LENGTH:
        return ErrorMessages.MAX_LENGTH_EXCEEDED
    return None


class MergeResult(BaseModel):
    """Display set produced by :meth:`MetadataReconciler.merge`."""

    display: list[MetadataPair] = Field(default_factory=list)
    errors: list[FieldError] = Field(default_factory=list)
    precedence: str = "reject"

    @property
    def has_validation_error(self) -> bool:
        return bool(self.errors)

    @property
    def inherited(self) -> list[MetadataPair]:
        return [p for p in self.display if not p.editable]

    @property
    def user(self) -> list[MetadataPair]:
        return [p for p in self.display if p.editable]

    def labels(self) -> dict[str, str]:
        """Flatten the display set into the label map sent to the backend.

        Site pairs override region pairs. User pairs override inherited ones
        unless the precedence is ``inherited``.
        """
        inherited: dict[str, str] = {}
        for pair in self.inherited:
            if pair.origin == "region":
                inherited[pair.key] = pair.value
        for pair in self.inherited:
            if pair.origin == "site":
                inherited[pair.key] = pair.value

        user = {pair.key: pair.value for pair in self.user}
        if self.precedence == "inherited":
            return {**user, **inherited}
        return {**inherited, **user}

    def metadata_list(self) -> list[dict]:
        """Pairs for the metadata service, user pairs first."""
        return [p.to_api_dict() for p in self.user] + [p.to_api_dict() for p in self.inherited]


def _coerce_pairs(pairs, origin: str) -> list[MetadataPair]:
    if pairs is None:
        return []
    if isinstance(pairs, dict):
        return [MetadataPair(key=k, value=v, origin=origin) for k, v in pairs.items()]
    result = []
    for pair in pairs:
        if isinstance(pair, MetadataPair):
            result.append(pair.model_copy(update={"origin": origin}))
        else:
            result.append(MetadataPair(key=pair["key"], value=pair["value"], origin=origin))
    return result


class MetadataReconciler:
    """Combines region/site metadata with user labels and validates the latter."""

    def __init__(self, precedence: LabelPrecedence = "reject"):
        """Initialize the reconciler.

        Args:
            precedence: How a user key that repeats an inherited key is resolved:
                ``user`` keeps the user value, ``inherited`` keeps the inherited
                value and ``reject`` reports a validation error.
        """
        if precedence not in LABEL_PRECEDENCES:
            raise ValueError(f"precedence must be one of {LABEL_PRECEDENCES}, got '{precedence}'")
        self.precedence = precedence

    def merge(self, inherited_region, inherited_site, user_labels) -> MergeResult:
        """Merge inherited and user metadata into one display set.

        Args:
            inherited_region: Region pairs (list of pairs or mapping)
            inherited_site: Site pairs (list of pairs or mapping)
            user_labels: User pairs (list of pairs or mapping)

        Returns:
            MergeResult with the tagged display pairs and any field errors
        """
        region = _coerce_pairs(inherited_region, "region")
        site = _coerce_pairs(inherited_site, "site")
        inherited = {(p.key, p.value) for p in region + site}

        # A user pair repeating an inherited pair verbatim adds nothing
        user = [
            p
            for p in _coerce_pairs(user_labels, "user")
            if (p.key or p.value) and (p.key, p.value) not in inherited
        ]

        inherited_keys = {key for key, _ in inherited}
        errors = self.validate(user, inherited_keys)

        if errors:
            logger.debug(f"Metadata has {len(errors)} validation error(s)")

        return MergeResult(display=region + site + user, errors=errors, precedence=self.precedence)

    def validate(
        self, user: list[MetadataPair], inherited_keys: set[str] = frozenset()
    ) -> list[FieldError]:
        """Validate user pairs locally.

        Returns:
            One error per invalid field, at most two per pair
        """
        errors: list[FieldError] = []
        for index, pair in enumerate(user):
            key_error = None
            if not pair.key:
                key_error = ErrorMessages.IS_REQUIRED
            elif any(other.key == pair.key for i, other in enumerate(user) if i != index):
                key_error = ErrorMessages.KEY_EXISTS
            else:
                key_error = check_label_text(pair.key)
            if key_error is None and self.precedence == "reject" and pair.key in inherited_keys:
                key_error = ErrorMessages.KEY_INHERITED
            if key_error:
                errors.append(FieldError(index=index, field="key", message=key_error))

            value_error = ErrorMessages.IS_REQUIRED if not pair.value else check_label_text(pair.value)
            if value_error:
                errors.append(FieldError(index=index, field="value", message=value_error))

        return errors
