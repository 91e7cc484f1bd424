import copy
import re
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import psycopg2
import psycopg2.errorcodes
import pytest

from pos_backend import app_context
from pos_backend.config import load_app_config, load_mail_config
from pos_backend.mail import DevPrintProvider

FIXED_NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)

_PROPERTY_INSERT = re.compile(r"^INSERT INTO properties \((?P<columns>[^)]*)\) VALUES")
_PROPERTY_UPDATE = re.compile(r"^UPDATE properties SET (?P<assignments>.*), updated_at = NOW\(\) WHERE id = %s")
_INVITATION_LIST = re.compile(r"WHERE (?P<column>\w+) = %s ORDER BY created_at DESC")


class DriverIntegrityError(psycopg2.IntegrityError):
    """IntegrityError carrying the ``pgcode`` and constraint a server would report.

    psycopg2 exposes both as read-only attributes, so they are overridden here.
    """

    def __init__(self, pgcode: str, constraint: Optional[str] = None) -> None:
        super().__init__(f"integrity violation on {constraint or 'unknown constraint'}")
        self._pgcode = pgcode
        self._diag = SimpleNamespace(constraint_name=constraint)

    @property
    def pgcode(self):
        return self._pgcode

    @property
    def diag(self):
        return self._diag


class FakeDatabase:
    """In-memory stand-in for the PostgreSQL tables the services touch."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            "users": [],
            "accounts": [],
            "account_users": [],
            "contacts": [],
            "account_contacts": [],
            "properties": [],
            "property_users": [],
            "subscription_products": [],
            "account_subscriptions": [],
            "user_invitations": [],
            "account_usage_events": [],
        }
        self._sequences: Dict[str, int] = {}
        self.now = FIXED_NOW
        self.statements: List[str] = []
        self.last_params: tuple = ()
        self.advisory_locks: List[tuple] = []
        self.fail_on: Optional[str] = None
        self.commits = 0
        self.rollbacks = 0

    def connect(self) -> "FakeConnection":
        return FakeConnection(self)

    def next_id(self, table: str) -> int:
        value = self._sequences.get(table, 0) + 1
        self._sequences[table] = value
        return value

    # Seed helpers -------------------------------------------------------

    def add_user(
        self,
        email: str,
        *,
        name: Optional[str] = None,
        role: str = "agent",
        is_active: bool = True,
        password_hash: Optional[str] = None,
    ) -> int:
        user_id = self.next_id("users")
        self.tables["users"].append(
            {
                "id": user_id,
                "email": email,
                "name": name or email.split("@")[0],
                "password_hash": password_hash,
                "role": role,
                "is_active": is_active,
                "created_at": self.now,
                "updated_at": self.now,
            }
        )
        return user_id

    def add_account(self, name: str = "Acme Realty", owner_user_id: Optional[int] = None) -> int:
        account_id = self.next_id("accounts")
        self.tables["accounts"].append(
            {"id": account_id, "name": name, "owner_user_id": owner_user_id, "created_at": self.now}
        )
        return account_id

    def add_account_user(self, account_id: int, user_id: int, role: str = "member") -> None:
        self.tables["account_users"].append({"account_id": account_id, "user_id": user_id, "role": role})

    def add_contact(self, account_id: int, *, email: Optional[str] = None, name: str = "Contact") -> int:
        contact_id = self.next_id("contacts")
        self.tables["contacts"].append({"id": contact_id, "name": name, "email": email, "created_at": self.now})
        self.tables["account_contacts"].append({"account_id": account_id, "contact_id": contact_id})
        return contact_id

    def account_contacts(self, account_id: int) -> List[Dict[str, Any]]:
        linked = {row["contact_id"] for row in self.tables["account_contacts"] if row["account_id"] == account_id}
        return [row for row in self.tables["contacts"] if row["id"] in linked]

    def add_property(self, account_id: int, **fields: Any) -> int:
        property_id = self.next_id("properties")
        row = {
            "id": property_id,
            "property_uid": f"UID{property_id:023d}",
            "passport_id": None,
            "account_id": account_id,
            "created_at": self.now,
            "updated_at": self.now,
        }
        row.update(fields)
        self.tables["properties"].append(row)
        return property_id

    def add_member(
        self,
        property_id: int,
        user_id: int,
        role: str = "agent",
        *,
        created_at: Optional[datetime] = None,
    ) -> None:
        stamp = created_at or self.now
        self.tables["property_users"].append(
            {
                "property_id": property_id,
                "user_id": user_id,
                "role": role,
                "created_at": stamp,
                "updated_at": stamp,
            }
        )

    def add_product(
        self,
        name: str,
        *,
        price: str = "0",
        is_active: bool = True,
        max_properties: int = 3,
        max_contacts: int = 50,
        max_viewers: int = 5,
        max_team_members: int = 10,
    ) -> int:
        product_id = self.next_id("subscription_products")
        self.tables["subscription_products"].append(
            {
                "id": product_id,
                "name": name,
                "price": Decimal(price),
                "is_active": is_active,
                "max_properties": max_properties,
                "max_contacts": max_contacts,
                "max_viewers": max_viewers,
                "max_team_members": max_team_members,
            }
        )
        return product_id

    def add_subscription(self, account_id: int, product_id: int, status: str = "active") -> int:
        subscription_id = self.next_id("account_subscriptions")
        self.tables["account_subscriptions"].append(
            {
                "id": subscription_id,
                "account_id": account_id,
                "subscription_product_id": product_id,
                "status": status,
            }
        )
        return subscription_id

    # Lookups used by assertions ----------------------------------------

    def members(self, property_id: int) -> Dict[int, Dict[str, Any]]:
        return {
            row["user_id"]: row
            for row in self.tables["property_users"]
            if row["property_id"] == property_id
        }

    def user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        for row in self.tables["users"]:
            if row["email"] == email:
                return row
        return None

    def invitation(self, invitation_id: int) -> Dict[str, Any]:
        for row in self.tables["user_invitations"]:
            if row["id"] == invitation_id:
                return row
        raise KeyError(invitation_id)


class FakeConnection:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db
        self.closed = False
        self._depth = 0
        self._snapshot: Optional[Dict[str, List[Dict[str, Any]]]] = None

    def __enter__(self):
        if self._depth == 0:
            self._snapshot = copy.deepcopy(self.db.tables)
        self._depth += 1
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self._depth -= 1
        if self._depth == 0:
            if exc_type is None:
                self.db.commits += 1
            else:
                self.db.tables = self._snapshot
                self.db.rollbacks += 1
            self._snapshot = None
        return False

    def cursor(self, cursor_factory=None) -> "FakeCursor":
        return FakeCursor(self.db)

    def commit(self) -> None:
        self.db.commits += 1

    def rollback(self) -> None:
        self.db.rollbacks += 1

    def close(self) -> None:
        self.closed = True


class FakeCursor:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db
        self._result: List[Dict[str, Any]] = []
        self.rowcount = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        pass

    def fetchone(self) -> Optional[Dict[str, Any]]:
        if not self._result:
            return None
        return self._result[0]

    def fetchall(self) -> List[Dict[str, Any]]:
        return list(self._result)

    def _set(self, rows: List[Dict[str, Any]]) -> None:
        self._result = [dict(row) for row in rows]
        self.rowcount = len(rows)

    def execute(self, query: str, params: Optional[tuple] = None) -> None:
        sql = " ".join(query.strip().split())
        params = tuple(params or ())
        self.db.statements.append(sql)
        self.db.last_params = params
        if self.db.fail_on and sql.startswith(self.db.fail_on):
            raise psycopg2.OperationalError("simulated database failure")

        tables = self.db.tables
        now = self.db.now

        if sql.startswith("SELECT pg_advisory_xact_lock"):
            self.db.advisory_locks.append(params)
            self._set([{"pg_advisory_xact_lock": None}])
            return

        # Tier policy
        if sql.startswith("SELECT sp.max_properties"):
            (account_id,) = params
            products = {row["id"]: row for row in tables["subscription_products"]}
            candidates = [
                products[sub["subscription_product_id"]]
                for sub in tables["account_subscriptions"]
                if sub["account_id"] == account_id and sub["status"] == "active"
            ]
            candidates.sort(key=lambda row: (row["price"], row["id"]), reverse=True)
            self._set(candidates[:1])
            return
        if sql.startswith("SELECT max_properties, max_contacts, max_viewers, max_team_members FROM subscription_products"):
            rows = [
                row
                for row in tables["subscription_products"]
                if row["name"].lower() == "free" and row["is_active"]
            ]
            self._set(rows[:1])
            return
        if sql.startswith("SELECT COUNT(*) AS count FROM properties WHERE account_id = %s"):
            count = sum(1 for row in tables["properties"] if row["account_id"] == params[0])
            self._set([{"count": count}])
            return
        if sql.startswith("SELECT COUNT(*) AS count FROM account_contacts WHERE account_id = %s"):
            count = sum(1 for row in tables["account_contacts"] if row["account_id"] == params[0])
            self._set([{"count": count}])
            return
        if sql.startswith("SELECT COUNT(*) AS count FROM property_users WHERE property_id = %s AND role = 'viewer'"):
            count = sum(
                1
                for row in tables["property_users"]
                if row["property_id"] == params[0] and row["role"] == "viewer"
            )
            self._set([{"count": count}])
            return
        if sql.startswith("SELECT COUNT(*) AS count FROM property_users WHERE property_id = %s"):
            count = sum(1 for row in tables["property_users"] if row["property_id"] == params[0])
            self._set([{"count": count}])
            return

        # Usage ledger
        if sql.startswith("INSERT INTO account_usage_events"):
            (account_id, user_id, category, resource, quantity, unit, unit_cost, total_cost, metadata, created_at) = params
            row = {
                "id": self.db.next_id("account_usage_events"),
                "account_id": account_id,
                "user_id": user_id,
                "category": category,
                "resource": resource,
                "quantity": quantity,
                "unit": unit,
                "unit_cost": unit_cost,
                "total_cost": total_cost,
                "metadata": copy.deepcopy(getattr(metadata, "adapted", metadata)),
                "created_at": created_at,
            }
            tables["account_usage_events"].append(row)
            self._set([row])
            return
        if sql.startswith("SELECT COALESCE(SUM(total_cost), 0) AS spend FROM account_usage_events"):
            if "AND category = %s" in sql:
                account_id, category, since = params
            else:
                (account_id, since), category = params, None
            spend = sum(
                (
                    row["total_cost"]
                    for row in tables["account_usage_events"]
                    if row["account_id"] == account_id
                    and row["created_at"] >= since
                    and (category is None or row["category"] == category)
                ),
                Decimal(0),
            )
            self._set([{"spend": spend}])
            return
        if sql.startswith("SELECT category, COALESCE(SUM(total_cost), 0) AS spend"):
            account_id, since = params
            totals: Dict[str, Decimal] = {}
            for row in tables["account_usage_events"]:
                if row["account_id"] == account_id and row["created_at"] >= since:
                    totals[row["category"]] = totals.get(row["category"], Decimal(0)) + row["total_cost"]
            self._set([{"category": key, "spend": totals[key]} for key in sorted(totals)])
            return
        if sql.startswith("SELECT id, account_id, user_id, category"):
            if "AND category = %s" in sql:
                account_id, category, limit, offset = params
            else:
                (account_id, limit, offset), category = params, None
            rows = [
                row
                for row in tables["account_usage_events"]
                if row["account_id"] == account_id and (category is None or row["category"] == category)
            ]
            rows.sort(key=lambda row: (row["created_at"], row["id"]), reverse=True)
            self._set(rows[offset : offset + limit])
            return

        # Users and accounts
        if sql.startswith("SELECT id, email, name, role, is_active FROM users WHERE email = %s"):
            rows = [row for row in tables["users"] if row["email"] == params[0]]
            self._set(rows[:1])
            return
        if sql.startswith("INSERT INTO users"):
            email, name, password_hash, role = params
            if any(row["email"] == email for row in tables["users"]):
                raise DriverIntegrityError(psycopg2.errorcodes.UNIQUE_VIOLATION, "users_email_key")
            user_id = self.db.add_user(email, name=name, role=role, is_active=True, password_hash=password_hash)
            self._set([{"id": user_id}])
            return
        if sql.startswith("UPDATE users SET password_hash = %s, is_active = true"):
            password_hash, user_id = params
            for row in tables["users"]:
                if row["id"] == user_id:
                    row.update(password_hash=password_hash, is_active=True, updated_at=now)
            self._set([])
            return
        if sql.startswith("INSERT INTO account_users"):
            account_id, user_id, role = params
            for row in tables["account_users"]:
                if row["account_id"] == account_id and row["user_id"] == user_id:
                    row["role"] = role
                    break
            else:
                tables["account_users"].append({"account_id": account_id, "user_id": user_id, "role": role})
            self._set([])
            return
        if sql.startswith("SELECT role FROM account_users"):
            account_id, user_id, owner_account_id, owner_user_id = params
            rows = [
                {"role": row["role"]}
                for row in tables["account_users"]
                if row["account_id"] == account_id and row["user_id"] == user_id
            ]
            rows.extend(
                {"role": "owner"}
                for row in tables["accounts"]
                if row["id"] == owner_account_id and row["owner_user_id"] == owner_user_id
            )
            self._set(rows)
            return

        # Contacts
        if sql.startswith("SELECT c.id FROM contacts c JOIN account_contacts ac"):
            account_id, email = params
            rows = [
                {"id": row["id"]}
                for row in self.db.account_contacts(account_id)
                if (row["email"] or "").lower() == email
            ]
            rows.sort(key=lambda row: row["id"])
            self._set(rows[:1])
            return
        if sql.startswith("INSERT INTO contacts"):
            name, email = params
            contact_id = self.db.next_id("contacts")
            tables["contacts"].append({"id": contact_id, "name": name, "email": email, "created_at": now})
            self._set([{"id": contact_id}])
            return
        if sql.startswith("INSERT INTO account_contacts"):
            account_id, contact_id = params
            link = {"account_id": account_id, "contact_id": contact_id}
            if link not in tables["account_contacts"]:
                tables["account_contacts"].append(link)
            self._set([])
            return

        # Properties and memberships
        if sql.startswith("SELECT user_id FROM property_users WHERE property_id = %s"):
            self._set(
                [{"user_id": row["user_id"]} for row in tables["property_users"] if row["property_id"] == params[0]]
            )
            return
        if sql.startswith("DELETE FROM property_users WHERE property_id = %s AND user_id = ANY(%s)"):
            property_id, user_ids = params
            before = len(tables["property_users"])
            tables["property_users"] = [
                row
                for row in tables["property_users"]
                if not (row["property_id"] == property_id and row["user_id"] in set(user_ids))
            ]
            self._set([])
            self.rowcount = before - len(tables["property_users"])
            return
        if sql.startswith("INSERT INTO property_users"):
            returned = []
            user_ids = {row["id"] for row in tables["users"]}
            property_ids = {row["id"] for row in tables["properties"]}
            for index in range(0, len(params), 3):
                property_id, user_id, role = params[index : index + 3]
                if user_id not in user_ids or property_id not in property_ids:
                    raise DriverIntegrityError(psycopg2.errorcodes.FOREIGN_KEY_VIOLATION, "property_users_user_id_fkey")
                existing = self.db.members(property_id).get(user_id)
                if existing is not None:
                    existing.update(role=role, updated_at=now)
                    row = existing
                else:
                    row = {
                        "property_id": property_id,
                        "user_id": user_id,
                        "role": role,
                        "created_at": now,
                        "updated_at": now,
                    }
                    tables["property_users"].append(row)
                returned.append({"property_id": property_id, "user_id": user_id, "role": role})
            self._set(returned)
            return
        if sql.startswith("SELECT u.id, u.email, u.name, u.role, u.is_active, pu.role AS property_role"):
            users = {row["id"]: row for row in tables["users"]}
            rows = []
            for member in tables["property_users"]:
                if member["property_id"] != params[0]:
                    continue
                user = users[member["user_id"]]
                rows.append(
                    {
                        "id": user["id"],
                        "email": user["email"],
                        "name": user["name"],
                        "role": user["role"],
                        "is_active": user["is_active"],
                        "property_role": member["role"],
                    }
                )
            rows.sort(key=lambda row: row["name"] or "")
            self._set(rows)
            return
        if sql.startswith("SELECT p.account_id, pu.role AS property_role"):
            user_id, property_id = params
            for prop in tables["properties"]:
                if prop["id"] == property_id:
                    member = self.db.members(property_id).get(user_id)
                    self._set([{"account_id": prop["account_id"], "property_role": member["role"] if member else None}])
                    return
            self._set([])
            return
        match = _PROPERTY_INSERT.match(sql)
        if match:
            columns = [column.strip() for column in match.group("columns").split(",")]
            row = dict(zip(columns, params))
            if any(existing["property_uid"] == row["property_uid"] for existing in tables["properties"]):
                raise DriverIntegrityError(psycopg2.errorcodes.UNIQUE_VIOLATION, "properties_property_uid_key")
            row.update(id=self.db.next_id("properties"), created_at=now, updated_at=now)
            tables["properties"].append(row)
            self._set([row])
            return
        if sql.startswith("SELECT id, property_uid"):
            if "WHERE property_uid = %s" in sql:
                rows = [row for row in tables["properties"] if row["property_uid"] == params[0]]
            elif "WHERE account_id = %s" in sql:
                rows = [row for row in tables["properties"] if row["account_id"] == params[0]]
                rows.sort(key=lambda row: (row["created_at"], row["id"]), reverse=True)
            else:
                rows = [row for row in tables["properties"] if row["id"] == params[0]]
            self._set(rows)
            return
        match = _PROPERTY_UPDATE.match(sql)
        if match:
            columns = [part.split(" = ")[0] for part in match.group("assignments").split(", ")]
            *values, property_id = params
            for row in tables["properties"]:
                if row["id"] == property_id:
                    row.update(dict(zip(columns, values)), updated_at=now)
                    self._set([row])
                    return
            self._set([])
            return

        # Invitations
        if sql.startswith("INSERT INTO user_invitations"):
            (token_hash, scope, inviter_user_id, invitee_email, account_id, property_id, intended_role, expires_at, created_at) = params
            if any(row["token_hash"] == token_hash for row in tables["user_invitations"]):
                raise DriverIntegrityError(psycopg2.errorcodes.UNIQUE_VIOLATION, "user_invitations_token_hash_key")
            row = {
                "id": self.db.next_id("user_invitations"),
                "token_hash": token_hash,
                "scope": scope,
                "inviter_user_id": inviter_user_id,
                "invitee_email": invitee_email,
                "account_id": account_id,
                "property_id": property_id,
                "intended_role": intended_role,
                "state": "pending",
                "expires_at": expires_at,
                "created_at": created_at,
                "consumed_at": None,
                "accepted_by_user_id": None,
            }
            tables["user_invitations"].append(row)
            self._set([_public_invitation(row)])
            return
        if sql.startswith("SELECT id, scope, inviter_user_id"):
            if "WHERE token_hash = %s" in sql:
                rows = [row for row in tables["user_invitations"] if row["token_hash"] == params[0]]
            elif "WHERE id = %s" in sql:
                rows = [row for row in tables["user_invitations"] if row["id"] == params[0]]
            else:
                column = _INVITATION_LIST.search(sql).group("column")
                rows = [row for row in tables["user_invitations"] if row[column] == params[0]]
                rows.sort(key=lambda row: (row["created_at"], row["id"]), reverse=True)
            self._set([_public_invitation(row) for row in rows])
            return
        if sql.startswith("UPDATE user_invitations SET state = %s"):
            state, consumed_at, accepted_by_user_id, invitation_id = params
            for row in tables["user_invitations"]:
                if row["id"] == invitation_id and row["state"] == "pending":
                    row["state"] = state
                    if consumed_at is not None:
                        row["consumed_at"] = consumed_at
                    if accepted_by_user_id is not None:
                        row["accepted_by_user_id"] = accepted_by_user_id
                    self._set([_public_invitation(row)])
                    return
            self._set([])
            return
        if sql.startswith("UPDATE user_invitations SET state = 'expired'"):
            (cutoff,) = params
            expired = []
            for row in tables["user_invitations"]:
                if row["state"] == "pending" and row["expires_at"] <= cutoff:
                    row["state"] = "expired"
                    expired.append({"id": row["id"]})
            self._set(expired)
            return

        raise AssertionError(f"Unexpected query: {sql}")


def _public_invitation(row: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in row.items() if key != "token_hash"}


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def conn(db: FakeDatabase) -> FakeConnection:
    return db.connect()


@pytest.fixture
def clock(db: FakeDatabase):
    return lambda: db.now


@pytest.fixture
def integrity_error():
    return DriverIntegrityError


@pytest.fixture
def configured_app(db: FakeDatabase):
    """Register the fake database and a dev mail provider in the app context."""

    provider = DevPrintProvider(from_email="noreply@example.com")
    app_context.configure(
        get_conn=db.connect,
        get_current_user=lambda **_: None,
        password_hasher=lambda password: f"hashed:{password}",
        app_config=load_app_config(env={}),
        mail_config=load_mail_config(env={"EMAIL_RETRY_BACKOFF": "0"}),
        email_provider=provider,
    )
    return provider
