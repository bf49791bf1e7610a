# Overview: Chain profiles; one ledger/workflow implementation parameterized per distribution chain.

"""
Each distribution chain (one role-to-role path, e.g. Distributor ->
Distributor Representative) differs only in where its stock lives, which
roles raise and approve its requests, whose ledger supplies it, and whether
batches carry pricing. Everything else is shared.

Roles are the opaque role strings supplied by the identity provider.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .errors import ValidationError


ROLE_HEAD_OF_OPERATIONS = "HeadOfOperations"
ROLE_MAIN_DIRECTOR = "MainDirector"
ROLE_ADMIN = "Admin"
ROLE_DISTRIBUTOR = "Distributor"
ROLE_DISTRIBUTOR_REP = "DistributorRepresentative"
ROLE_DS_MANAGER = "DirectShowroomManager"
ROLE_DS_STAFF = "DirectShowroomStaff"
ROLE_DIRECT_REP = "DirectRepresentative"

HEAD_OFFICE_ROLES = frozenset({ROLE_HEAD_OF_OPERATIONS, ROLE_MAIN_DIRECTOR, ROLE_ADMIN})

CHAIN_HEAD_OFFICE = "head_office"
CHAIN_DISTRIBUTOR = "distributor"
CHAIN_DISTRIBUTOR_REP = "distributor_rep"
CHAIN_DIRECT_SHOWROOM = "direct_showroom"
CHAIN_DIRECT_REP = "direct_rep"


@dataclass(frozen=True)
class ChainProfile:
    code: str
    label: str
    stock_prefix: str
    request_collection: Optional[str]
    tracks_pricing: bool
    default_location: str
    requester_roles: frozenset = field(default_factory=frozenset)
    approver_roles: frozenset = field(default_factory=frozenset)
    supplier_chain: Optional[str] = None
    scoped_by_distributor: bool = False

    @property
    def accepts_requests(self) -> bool:
        return self.request_collection is not None

    def entry_path(self, owner_id: str, entry_id) -> str:
        return f"{self.stock_prefix}/users/{owner_id}/entries/{entry_id}"

    def summary_path(self, owner_id: str, product_id: str) -> str:
        return f"{self.stock_prefix}/users/{owner_id}/summary/{product_id}"

    def request_path(self, request_id, distributor_id: str | None = None) -> str:
        if self.request_collection is None:
            raise ValidationError(f"Chain {self.code} does not accept requests")
        if self.scoped_by_distributor:
            return f"{self.request_collection}/{distributor_id}/{request_id}"
        return f"{self.request_collection}/{request_id}"

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "label": self.label,
            "stock_prefix": self.stock_prefix,
            "request_collection": self.request_collection,
            "tracks_pricing": self.tracks_pricing,
            "default_location": self.default_location,
            "requester_roles": sorted(self.requester_roles),
            "approver_roles": sorted(self.approver_roles),
            "supplier_chain": self.supplier_chain,
        }


CHAIN_PROFILES: dict[str, ChainProfile] = {
    profile.code: profile
    for profile in (
        ChainProfile(
            code=CHAIN_HEAD_OFFICE,
            label="Head Office",
            stock_prefix="hostock",
            request_collection=None,
            tracks_pricing=True,
            default_location="factory",
        ),
        ChainProfile(
            code=CHAIN_DISTRIBUTOR,
            label="Distributor",
            stock_prefix="distributorStock",
            request_collection="distributorReqs",
            tracks_pricing=True,
            default_location="warehouse",
            requester_roles=frozenset({ROLE_DISTRIBUTOR}),
            approver_roles=HEAD_OFFICE_ROLES,
            supplier_chain=CHAIN_HEAD_OFFICE,
        ),
        ChainProfile(
            code=CHAIN_DISTRIBUTOR_REP,
            label="Distributor Representative",
            stock_prefix="disrepstock",
            request_collection="disRefReqs",
            tracks_pricing=True,
            default_location="field",
            requester_roles=frozenset({ROLE_DISTRIBUTOR_REP}),
            approver_roles=frozenset({ROLE_DISTRIBUTOR}),
            supplier_chain=CHAIN_DISTRIBUTOR,
            scoped_by_distributor=True,
        ),
        ChainProfile(
            code=CHAIN_DIRECT_SHOWROOM,
            label="Direct Showroom",
            stock_prefix="dsstock",
            request_collection="dsreqs",
            tracks_pricing=False,
            default_location="showroom",
            requester_roles=frozenset({ROLE_DS_MANAGER, ROLE_DS_STAFF}),
            approver_roles=HEAD_OFFICE_ROLES,
            supplier_chain=CHAIN_HEAD_OFFICE,
        ),
        ChainProfile(
            code=CHAIN_DIRECT_REP,
            label="Direct Representative",
            stock_prefix="drstock",
            request_collection="drreqs",
            tracks_pricing=True,
            default_location="field",
            requester_roles=frozenset({ROLE_DIRECT_REP}),
            approver_roles=HEAD_OFFICE_ROLES,
            supplier_chain=CHAIN_HEAD_OFFICE,
        ),
    )
}


def get_chain(code: str) -> ChainProfile:
    profile = CHAIN_PROFILES.get(code)
    if profile is None:
        raise ValidationError(f"Unknown chain: {code}")
    return profile


def can_request(role: str, chain: ChainProfile) -> bool:
    return role in chain.requester_roles


def can_approve(role: str, chain: ChainProfile) -> bool:
    return role in chain.approver_roles
