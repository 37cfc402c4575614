from __future__ import annotations

from typing import TYPE_CHECKING

from driftwood.domain.model import Document, ResourceDeclaration

if TYPE_CHECKING:
    from collections.abc import Mapping

BUCKET_POLICY_STATEMENTS = [{"effect": "allow", "principal": "cdn", "actions": ["read"]}]


def declare(
    resource_type: str,
    name: str,
    *,
    depends_on: tuple[str, ...] = (),
    enabled: bool | str = True,
    create_before_destroy: bool = False,
    prevent_destroy: bool = False,
    ignore_changes: tuple[str, ...] = (),
    **attributes: object,
) -> ResourceDeclaration:
    return ResourceDeclaration(
        type=resource_type,
        name=name,
        attributes=attributes,
        depends_on=depends_on,
        enabled=enabled,
        create_before_destroy=create_before_destroy,
        prevent_destroy=prevent_destroy,
        ignore_changes=ignore_changes,
    )


def document(
    *resources: ResourceDeclaration,
    variables: Mapping[str, object] | None = None,
    outputs: Mapping[str, str] | None = None,
) -> Document:
    return Document(
        variables=dict(variables or {}),
        resources=tuple(resources),
        outputs=dict(outputs or {}),
    )


def bucket(name: str = "site", **overrides: object) -> ResourceDeclaration:
    attributes: dict[str, object] = {"bucket_name": f"{name}-bucket", "region": "eu-central-1"}
    attributes.update(overrides)
    return declare("storage_bucket", name, **attributes)


def policy(
    name: str = "site", *, bucket_name: str = "site", **overrides: object
) -> ResourceDeclaration:
    attributes: dict[str, object] = {
        "bucket": f"${{storage_bucket.{bucket_name}.arn}}",
        "statements": BUCKET_POLICY_STATEMENTS,
    }
    attributes.update(overrides)
    return declare("access_policy", name, **attributes)


def bucket_and_policy() -> Document:
    """Bucket ``B`` and a policy ``P`` that references the bucket's ARN."""

    return document(bucket(), policy())
