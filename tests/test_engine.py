"""Tests for CRUD dispatch through the SyncEngine against the memory driver."""

import pytest
from bson import ObjectId

from docsync import DocSync, Entity, EntitySet
from docsync.core.defer import DeferredState
from docsync.core.errors import (
    ConfigurationError,
    DocSyncError,
    DuplicateKeyError,
    UnsupportedMethodError,
    ValidationError,
)

calls = []


def remember(entity):
    calls.append(entity)


class User(Entity):
    database = "app"
    url = "users"

    username: str = ""


class Users(EntitySet):
    model = User


class Audited(Entity):
    database = "app"
    url = "audited"
    before = {"create username": lambda value: value.lower()}
    after = {"update": remember}

    username: str = ""


class Reserved(Entity):
    database = "app"
    url = "reserved"

    def validate_attributes(self, attributes):
        if attributes.get("username") == "root":
            return "username is reserved"
        return None


def refuse(value, done):
    done("nope")


class Refused(Entity):
    database = "app"
    url = "refused"
    before = {"create username": refuse}

    username: str = ""


class Homeless(Entity):
    url = "nowhere"


class Unnamed(Entity):
    database = "app"


class TestDispatch:
    """Action routing and option handling"""

    @pytest.mark.asyncio
    async def test_unsupported_action(self, engine, store):
        user = User(username="ada").bind(engine)

        deferred = engine.dispatch("explode", user)
        assert deferred.state is DeferredState.BUFFERED

        with pytest.raises(UnsupportedMethodError, match="explode"):
            await deferred
        assert store.operations == []

    @pytest.mark.asyncio
    async def test_unbound_entity(self):
        with pytest.raises(ConfigurationError):
            await User(username="ada").save()

    @pytest.mark.asyncio
    async def test_missing_database(self, client, store):
        entity = client.entity(Homeless, name="x")

        with pytest.raises(ConfigurationError, match="database name"):
            await entity.save()
        assert store.operations == []

    @pytest.mark.asyncio
    async def test_database_selected_with_use(self, client, store):
        entity = client.entity(Homeless, name="x").use("elsewhere")
        await entity.save()
        assert len(store.documents("elsewhere", "nowhere")) == 1

    @pytest.mark.asyncio
    async def test_missing_collection(self, client, store):
        with pytest.raises(ConfigurationError):
            await client.entity(Unnamed, name="x").save()
        assert store.count("insert") == 0

    @pytest.mark.asyncio
    async def test_collection_defined_at_runtime(self, client, store):
        entity = client.entity(Unnamed, name="x").define("url", "runtime")
        await entity.save()
        assert len(store.documents("app", "runtime")) == 1

    @pytest.mark.asyncio
    async def test_write_concern_never_applies_to_read(self, engine):
        assert engine._prepare_options("read", {"w": 2, "filter": {}}) == {"filter": {}}
        assert engine._prepare_options("delete", None) == {"w": 1}
        assert engine._prepare_options("update", {"w": 0}) == {"w": 0}


class TestCreate:
    """Inserting single records and record-sets"""

    @pytest.mark.asyncio
    async def test_round_trip(self, client):
        user = client.entity(User, username="test")
        assert not user.stored

        inserted = await user.save()
        assert user.stored
        assert isinstance(user.id, ObjectId)
        assert inserted[0]["_id"] == user.id

        copy = client.entity(User, _id=user.id)
        assert copy.stored, "an ObjectId identifier means the record came from the store"

        document = await copy.fetch()
        assert document == {"username": "test", "_id": user.id}
        assert copy.username == "test"

    @pytest.mark.asyncio
    async def test_create_clears_change_tracking(self, client):
        user = client.entity(User)
        user.username = "ada"
        assert user.has_changed("username")

        await user.save()
        assert user.changed_attributes() == {}

    @pytest.mark.asyncio
    async def test_set_is_inserted_in_one_batch(self, client, store):
        users = client.entity_set(Users, [{"username": "a"}, {"username": "b"}])

        inserted = await users.sync()

        assert store.count("insert") == 1
        assert len(inserted) == 2
        assert all(user.stored for user in users)
        assert all(isinstance(user.id, ObjectId) for user in users)
        assert len(store.documents("app", "users")) == 2

    @pytest.mark.asyncio
    async def test_empty_set_makes_no_storage_call(self, client, store):
        assert await client.entity_set(Users).sync() == []
        assert store.count("insert") == 0

    @pytest.mark.asyncio
    async def test_before_hooks_shape_the_document(self, client, store):
        entity = client.entity(Audited, username="MixedCase")
        await entity.save()

        stored = store.documents("app", "audited")[entity.id]
        assert stored["username"] == "mixedcase"

    @pytest.mark.asyncio
    async def test_duplicate_key_is_delivered(self, client):
        errors = []
        user = client.entity(User, username="ada")
        await user.sync("create")
        user.on("error", lambda entity, error: errors.append(error))

        with pytest.raises(DuplicateKeyError):
            await user.sync("create")
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_validation_failure_skips_storage(self, client, store):
        entity = client.entity(Reserved, username="root")

        with pytest.raises(ValidationError, match="reserved"):
            await entity.save()
        assert store.count("insert") == 0
        assert not entity.stored

    @pytest.mark.asyncio
    async def test_hook_failure_message_reaches_the_caller(self, client, store):
        entity = client.entity(Refused, username="ada")

        with pytest.raises(DocSyncError, match="nope"):
            await entity.save()
        assert store.count("insert") == 0
        assert not entity.stored

    @pytest.mark.asyncio
    async def test_run_validation_without_syncing(self, client, store):
        with pytest.raises(ValidationError):
            await client.entity(Reserved, username="root").run_validation()
        await client.entity(Reserved, username="ada").run_validation()
        assert store.operations == []

    @pytest.mark.asyncio
    async def test_sync_event(self, client):
        synced = []
        user = client.entity(User, username="ada")
        user.on("sync", lambda entity, result: synced.append(result))

        await user.save()
        assert len(synced) == 1


class TestRead:
    """Fetching records"""

    @pytest.mark.asyncio
    async def test_unstored_entity_skips_the_round_trip(self, client, store):
        user = client.entity(User, username="ada")

        assert await user.fetch() is None
        assert store.operations == [], "no connection, no hooks, no query"

    @pytest.mark.asyncio
    async def test_explicit_filter_reads_unstored_entity(self, client):
        await client.entity(User, username="ada").save()

        user = client.entity(User)
        document = await user.fetch({"filter": {"username": "ada"}})

        assert document["username"] == "ada"
        assert user.stored
        assert isinstance(user.id, ObjectId)

    @pytest.mark.asyncio
    async def test_missing_record(self, client):
        user = client.entity(User, _id=ObjectId())

        assert await user.fetch() is None
        assert not user.stored

    @pytest.mark.asyncio
    async def test_set_fetch_merges_documents(self, client):
        await client.entity_set(Users, [{"username": "a"}, {"username": "b"}]).sync()

        users = client.entity_set(Users)
        documents = await users.fetch()

        assert len(documents) == 2
        assert sorted(user.username for user in users) == ["a", "b"]
        assert all(user.stored for user in users)

    @pytest.mark.asyncio
    async def test_set_fetch_with_query_options(self, client):
        await client.entity_set(Users, [{"username": name} for name in "cab"]).sync()

        users = client.entity_set(Users)
        await users.fetch({"sort": [("username", 1)], "limit": 2})
        assert [user.username for user in users] == ["a", "b"]

        filtered = client.entity_set(Users)
        await filtered.fetch({"filter": {"username": "c"}})
        assert [user.username for user in filtered] == ["c"]

    @pytest.mark.asyncio
    async def test_set_fetch_updates_existing_members(self, client, store):
        users = client.entity_set(Users, [{"username": "a"}])
        await users.sync()
        store.documents("app", "users")[users[0].id]["username"] = "changed"

        await users.fetch({"filter": {}})
        assert len(users) == 1
        assert users[0].username == "changed"


class TestUpdate:
    """Full updates, patches and upserts"""

    @pytest.mark.asyncio
    async def test_patch_sends_changed_attributes(self, client, store):
        user = client.entity(User, username="ada", city="London")
        await user.save()

        user.username = "grace"
        assert await user.save(patch=True) == 1

        stored = store.documents("app", "users")[user.id]
        assert stored == {"_id": user.id, "username": "grace", "city": "London"}
        assert user.changed_attributes() == {}

    @pytest.mark.asyncio
    async def test_update_without_changes_modifies_nothing(self, client):
        user = client.entity(User, username="test")
        await user.save()

        assert await user.sync("update") == 0
        assert await user.sync("update") == 0

    @pytest.mark.asyncio
    async def test_update_replaces_the_document(self, client, store):
        user = client.entity(User, username="ada", city="London")
        await user.save()
        store.documents("app", "users")[user.id]["legacy"] = True

        user.username = "grace"
        assert await user.save() == 1
        assert "legacy" not in store.documents("app", "users")[user.id]

    @pytest.mark.asyncio
    async def test_upsert_inserts_missing_record(self, client, store):
        user = client.entity(User, username="ada")

        assert await user.sync("update", {"upsert": True}) == 1
        assert user.stored
        assert store.documents("app", "users")[user.id]["username"] == "ada"

    @pytest.mark.asyncio
    async def test_identifier_is_captured_when_dispatch_starts(self, client, store):
        user = client.entity(User, username="ada")
        await user.save()
        original = user.id

        user.username = "grace"
        deferred = user.sync("update")
        user.set("_id", ObjectId())

        assert await deferred == 1
        assert store.documents("app", "users")[original]["username"] == "grace"

    @pytest.mark.asyncio
    async def test_set_update_sums_modified_counts(self, client, store):
        users = client.entity_set(Users, [{"username": "a"}, {"username": "b"}])
        await users.sync()
        store.operations.clear()

        users[0].username = "changed"
        assert await users.sync("update") == 1
        assert store.count("update") == 2, "one update per member"

    @pytest.mark.asyncio
    async def test_after_hooks_run_on_zero_count(self, client):
        calls.clear()
        entity = client.entity(Audited, username="ada")
        await entity.save()

        assert await entity.sync("update") == 0
        assert calls == [entity]

    @pytest.mark.asyncio
    async def test_unacknowledged_writes(self, driver):
        client = DocSync(driver=driver, write_concern=0)
        user = client.entity(User, username="ada")
        await user.save()

        user.username = "grace"
        assert await user.sync("update") is None
        await client.close()


class TestDelete:
    """Removing records"""

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, client):
        user = client.entity(User, username="ada")
        await user.save()

        assert await user.destroy() == 1
        assert not user.stored
        assert await user.destroy() == 0

    @pytest.mark.asyncio
    async def test_set_delete(self, client, store):
        users = client.entity_set(Users, [{"username": "a"}, {"username": "b"}])
        await users.sync()

        assert await users.destroy() == 2
        assert store.count("remove") == 2
        assert not users.stored
        assert await users.destroy() == 0
