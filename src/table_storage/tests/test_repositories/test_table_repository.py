import pytest

from table_storage.backends.base import METADATA_KEY, TableBackendError
from table_storage.exceptions import (
    EntityAlreadyExistsError,
    EntityNotFoundError,
    InvalidInputError,
    RepositoryError,
    TableAlreadyExistsError,
    TableBeingDeletedError,
    TableNotFoundError,
)
from table_storage.mappers.entity_mapper import DictEntityMapper, ModelEntityMapper
from table_storage.repositories.table_repository import TableRepository

from ..test_fixtures.repository_fixtures import TABLE_NAME, Conversation, Release

# Property names the service also uses for its own metadata.
METADATA_NAMED_PROPERTIES = {
    "etag": "user-etag",
    "date": "2024-05-01",
    "version": 7,
    "timestamp": "user-timestamp",
    "content_type": "text/plain",
    "request_id": "user-request",
    "client_request_id": "user-client-request",
    "preference_applied": "none",
}


@pytest.mark.asyncio
class TestCreateTable:

    async def test_create_table_returns_true(self, dict_repo, memory_service):
        """
        Behavior:
            - Provision a table that does not exist yet.

        Importance:
            - Provisioning has exactly two outcomes: True, or a raised error.
        """
        # Act
        result = await dict_repo.create_table_if_not_exists("newtable")

        # Assert
        assert result is True
        assert "newtable" in memory_service.tables

    async def test_create_table_defaults_to_repository_table(self, dict_repo, memory_service):
        memory_service.tables.clear()

        assert await dict_repo.create_table_if_not_exists() is True
        assert TABLE_NAME in memory_service.tables

    async def test_existing_table_raises_table_already_exists(self, dict_repo):
        """
        Behavior:
            - Provision the table the fixture already created.
            - Expect TableAlreadyExistsError carrying the backend code and status.
        """
        with pytest.raises(TableAlreadyExistsError) as exc_info:
            await dict_repo.create_table_if_not_exists()

        err = exc_info.value
        assert err.code == "TableAlreadyExists"
        assert err.status_code == 409
        assert err.message == f"Error creating table. Table {TABLE_NAME} already exists."
        # the raw backend error stays reachable for debugging
        assert isinstance(err.__cause__, TableBackendError)

    async def test_table_being_deleted(self, dict_repo, memory_service):
        memory_service.tables_being_deleted.add("doomed")

        with pytest.raises(TableBeingDeletedError) as exc_info:
            await dict_repo.create_table_if_not_exists("doomed")

        assert exc_info.value.message == "Error creating entity. Table doomed is being deleted. Try again later."


@pytest.mark.asyncio
class TestCreate:

    async def test_create_returns_stored_entity_without_metadata(self, dict_repo, sample_entity_data):
        """
        Behavior:
            - Create an entity and inspect the returned value.

        Importance:
            - The caller gets back its own shape; etag/date/version added by the
              service are stripped by the mapper.
        """
        # Act
        created = await dict_repo.create(sample_entity_data)

        # Assert
        assert created == sample_entity_data
        assert "etag" not in created
        assert "date" not in created

    async def test_create_does_not_mutate_input(self, dict_repo, sample_entity_data):
        snapshot = dict(sample_entity_data)

        await dict_repo.create(sample_entity_data)

        assert sample_entity_data == snapshot

    async def test_duplicate_raises_entity_already_exists(self, dict_repo, created_entity):
        with pytest.raises(EntityAlreadyExistsError) as exc_info:
            await dict_repo.create(dict(created_entity))

        err = exc_info.value
        assert err.code == "EntityAlreadyExists"
        assert err.status_code == 409
        assert err.message == (
            "Error creating entity. Entity with the same partitionKey and rowKey already exists."
        )

    async def test_missing_table_raises_table_not_found(self, dict_repo, memory_service, sample_entity_data):
        memory_service.tables.clear()

        with pytest.raises(TableNotFoundError) as exc_info:
            await dict_repo.create(sample_entity_data)

        assert exc_info.value.message == (
            f"Error creating entity. Table {TABLE_NAME} Not Found. Is it created?"
        )
        assert exc_info.value.status_code == 404

    async def test_invalid_input_keeps_every_detail_line_in_order(self, dict_repo, sample_entity_data):
        """
        Behavior:
            - Write a property name the service rejects.
            - Expect InvalidInputError whose message holds every detail line, in order.
        """
        # Arrange
        sample_entity_data["bad name"] = "x"

        # Act
        with pytest.raises(InvalidInputError) as exc_info:
            await dict_repo.create(sample_entity_data)

        # Assert
        message = exc_info.value.message
        assert message.startswith("Error creating entity:One of the request inputs is not valid.")
        first = message.index("One of the request inputs is not valid.")
        second = message.index("The property name 'bad name' is invalid.")
        third = message.index("RequestId:")
        assert first < second < third
        assert exc_info.value.status_code == 400

    async def test_auto_provisioning_creates_missing_table(self, provisioning_repo, memory_service,
                                                           sample_entity_data):
        memory_service.tables.clear()

        created = await provisioning_repo.create(sample_entity_data)

        assert created == sample_entity_data
        assert TABLE_NAME in memory_service.tables

    async def test_auto_provisioning_treats_existing_table_as_success(self, provisioning_repo,
                                                                      sample_entity_data):
        """
        Behavior:
            - The table already exists and auto-provisioning is on.
            - Two creates in a row both succeed.
        """
        first = await provisioning_repo.create(sample_entity_data)
        second = await provisioning_repo.create({**sample_entity_data, "RowKey": "another"})

        assert first["RowKey"] == sample_entity_data["RowKey"]
        assert second["RowKey"] == "another"

    async def test_auto_provisioning_still_reports_other_failures(self, provisioning_repo, memory_service,
                                                                  sample_entity_data):
        memory_service.tables_being_deleted.add(TABLE_NAME)

        with pytest.raises(TableBeingDeletedError):
            await provisioning_repo.create(sample_entity_data)


@pytest.mark.asyncio
class TestFind:

    async def test_find_existing(self, dict_repo, created_entity):
        found = await dict_repo.find(created_entity["PartitionKey"], created_entity["RowKey"])

        assert found == created_entity

    async def test_find_strips_backend_metadata(self, dict_repo, created_entity):
        found = await dict_repo.find(created_entity["PartitionKey"], created_entity["RowKey"])

        assert not any(key.startswith("odata.") for key in found)
        assert "Timestamp" not in found
        assert "etag" not in found

    async def test_find_missing_returns_none(self, dict_repo):
        """
        Behavior:
            - Look up keys that were never written.

        Importance:
            - Absence is a normal outcome, not an exception.
        """
        assert await dict_repo.find("nobody", "nothing") is None

    async def test_find_metadata_only_record_returns_none(self, dict_repo, memory_service):
        """
        Behavior:
            - The handle answers with a record made only of service metadata.
            - After stripping nothing is left, which reads as "not found".
        """
        # Arrange: a handle whose get returns metadata only
        handle = dict_repo.manager.entity_handle()

        async def metadata_only(partition_key, row_key):
            return {
                "odata.etag": 'W/"x"',
                "Timestamp": "2024-01-01T00:00:00Z",
                METADATA_KEY: {"etag": 'W/"x"', "timestamp": "2024-01-01T00:00:00Z"},
            }

        handle.get_entity = metadata_only

        # Act / Assert
        assert await dict_repo.find("pk", "rk") is None

    async def test_find_in_missing_table_raises(self, dict_repo, memory_service):
        memory_service.tables.clear()

        with pytest.raises(TableNotFoundError):
            await dict_repo.find("pk", "rk")

    async def test_find_returns_model(self, model_repo):
        await model_repo.create(Conversation(partition_key="user-1", row_key="c-1", title="Hello"))

        found = await model_repo.find("user-1", "c-1")

        assert isinstance(found, Conversation)
        assert found.title == "Hello"
        assert found.key.partition_key == "user-1"


@pytest.mark.asyncio
class TestFindAll:

    async def test_find_all_drains_every_page(self, dict_repo, memory_service, multiple_entities):
        """
        Behavior:
            - Seven entities, page size two: the listing spans four pages.
            - find_all returns all seven.
        """
        memory_service.page_requests = 0

        result = await dict_repo.find_all()

        assert len(result) == len(multiple_entities)
        assert memory_service.page_requests == 4

    @pytest.mark.parametrize("page_size", [1, 2, 3, 7, 50])
    async def test_find_all_result_does_not_depend_on_page_size(self, dict_repo, multiple_entities, page_size):
        result = await dict_repo.find_all(results_per_page=page_size)

        assert result == multiple_entities

    async def test_find_all_empty_table(self, dict_repo):
        assert await dict_repo.find_all() == []

    async def test_find_all_passes_filter_through(self, dict_repo, memory_service, multiple_entities, create_entity):
        await create_entity(PartitionKey="other", RowKey="r1")

        result = await dict_repo.find_all("PartitionKey eq @pk", parameters={"pk": "bulk"})

        assert len(result) == len(multiple_entities)
        assert all(entity["PartitionKey"] == "bulk" for entity in result)
        assert memory_service.last_list_call["query_filter"] == "PartitionKey eq @pk"
        assert memory_service.last_list_call["parameters"] == {"pk": "bulk"}

    async def test_find_all_skips_records_empty_after_mapping(self, dict_repo, multiple_entities):
        """
        Behavior:
            - Select only a metadata column: every record maps to nothing.
            - find_all returns an empty list instead of a list of empty dicts.
        """
        assert await dict_repo.find_all(select=["Timestamp"]) == []

    async def test_find_all_invalid_filter_is_classified(self, dict_repo, multiple_entities):
        with pytest.raises(InvalidInputError):
            await dict_repo.find_all("PartitionKey gt 'a'")

    async def test_find_all_models(self, model_repo):
        for idx in range(3):
            await model_repo.create(Conversation(partition_key="p", row_key=f"r{idx}", title=f"t{idx}"))

        result = await model_repo.find_all()

        assert [c.title for c in result] == ["t0", "t1", "t2"]


@pytest.mark.asyncio
class TestUpdate:

    async def test_merge_patch_keeps_other_properties(self, dict_repo, created_entity):
        pk, rk = created_entity["PartitionKey"], created_entity["RowKey"]

        updated = await dict_repo.update(pk, rk, {"title": "Renamed"})

        assert updated["title"] == "Renamed"
        assert updated["message_count"] == created_entity["message_count"]

    async def test_replace_drops_missing_properties(self, dict_repo, created_entity):
        pk, rk = created_entity["PartitionKey"], created_entity["RowKey"]

        updated = await dict_repo.update(pk, rk, {"title": "Only"}, mode="replace")

        assert updated == {"PartitionKey": pk, "RowKey": rk, "title": "Only"}

    async def test_keys_injected_when_absent(self, dict_repo, memory_service, created_entity):
        """
        Behavior:
            - The patch carries no key fields.
            - The write record gets them from the call arguments, and the caller's
              patch object is left untouched.
        """
        # Arrange
        pk, rk = created_entity["PartitionKey"], created_entity["RowKey"]
        patch = {"title": "Injected"}

        # Act
        await dict_repo.update(pk, rk, patch)

        # Assert
        assert patch == {"title": "Injected"}
        stored = memory_service.tables[TABLE_NAME][(pk, rk)]
        assert stored["title"] == "Injected"

    async def test_keys_in_entity_win_over_arguments(self, dict_repo, create_entity):
        """
        Behavior:
            - The entity names its own keys; the arguments name another entity.
            - The entity's keys are used for the write.
        """
        target = await create_entity(PartitionKey="p", RowKey="target")
        await create_entity(PartitionKey="p", RowKey="decoy")

        updated = await dict_repo.update("p", "decoy", {"PartitionKey": "p", "RowKey": "target", "title": "Hit"})

        assert updated["RowKey"] == target["RowKey"]
        assert (await dict_repo.find("p", "target"))["title"] == "Hit"
        assert (await dict_repo.find("p", "decoy"))["title"] != "Hit"

    async def test_update_missing_entity_raises(self, dict_repo):
        with pytest.raises(EntityNotFoundError) as exc_info:
            await dict_repo.update("nobody", "nothing", {"title": "x"})

        assert exc_info.value.message == "Error processing entity. Entity not found."
        assert exc_info.value.status_code == 404

    async def test_update_rejects_unknown_mode(self, dict_repo, created_entity):
        with pytest.raises(ValueError):
            await dict_repo.update(created_entity["PartitionKey"], created_entity["RowKey"], {}, mode="upsert")

    async def test_update_with_model(self, model_repo):
        original = await model_repo.create(
            Conversation(partition_key="u", row_key="c", title="Old", message_count=3)
        )
        original.title = "New"

        updated = await model_repo.update("u", "c", original)

        assert isinstance(updated, Conversation)
        assert updated.title == "New"
        assert updated.message_count == 3


@pytest.mark.asyncio
class TestDelete:

    async def test_delete_returns_backend_metadata(self, dict_repo, memory_service, created_entity):
        pk, rk = created_entity["PartitionKey"], created_entity["RowKey"]

        result = await dict_repo.delete(pk, rk)

        assert set(result) >= {"request_id", "version", "date"}
        assert (pk, rk) not in memory_service.tables[TABLE_NAME]

    async def test_delete_then_find_returns_none(self, dict_repo, created_entity):
        pk, rk = created_entity["PartitionKey"], created_entity["RowKey"]

        await dict_repo.delete(pk, rk)

        assert await dict_repo.find(pk, rk) is None

    async def test_delete_missing_raises(self, dict_repo):
        with pytest.raises(EntityNotFoundError):
            await dict_repo.delete("nobody", "nothing")


@pytest.mark.asyncio
class TestFailurePaths:

    async def test_unstructured_backend_error_propagates_unchanged(self, dict_repo, memory_service):
        """
        Behavior:
            - The backend fails with a non-JSON message (e.g. a proxy's HTML page).
            - The exact same exception object reaches the caller.
        """
        raw = TableBackendError("<html>502 Bad Gateway</html>", status_code=502)
        memory_service.fail_next(raw)

        with pytest.raises(TableBackendError) as exc_info:
            await dict_repo.find("pk", "rk")

        assert exc_info.value is raw

    async def test_transport_error_propagates_unchanged(self, dict_repo, memory_service):
        memory_service.fail_next(ConnectionError("connection reset"))

        with pytest.raises(ConnectionError):
            await dict_repo.delete("pk", "rk")

    async def test_unknown_code_keeps_raw_message(self, dict_repo, memory_service):
        body = '{"odata.error": {"code": "OperationTimedOut", "message": {"lang": "en-US", "value": "slow"}}}'
        memory_service.fail_next(TableBackendError(body, status_code=500))

        with pytest.raises(RepositoryError) as exc_info:
            await dict_repo.find_all()

        err = exc_info.value
        assert type(err) is RepositoryError
        assert err.message == body
        assert err.code == "OperationTimedOut"
        assert err.status_code == 500

    async def test_malformed_connection_string_raises_at_first_use(self, memory_service):
        """
        Behavior:
            - No factory override: the default Azure builder parses the connection string.
            - The error is raised by the first operation, not swallowed.
        """
        from table_storage.connection.manager import TableConnectionManager

        manager = TableConnectionManager("not a connection string", TABLE_NAME, allow_insecure_connection=False)
        repo = TableRepository(manager, TABLE_NAME)

        with pytest.raises(ValueError):
            await repo.find("pk", "rk")


@pytest.mark.asyncio
class TestKeyValidation:

    @pytest.mark.parametrize("partition_key, row_key", [("", "r"), ("p", ""), (None, "r"), ("p", 5)])
    async def test_find_rejects_invalid_keys_before_io(self, dict_repo, memory_service, partition_key, row_key):
        """
        Behavior:
            - Look up with an empty or non-string key part.
            - Expect ValueError; no backend handle is ever built.
        """
        with pytest.raises(ValueError):
            await dict_repo.find(partition_key, row_key)

        assert memory_service.entity_handles_built == 0

    @pytest.mark.parametrize("partition_key, row_key", [("", "r"), ("p", "")])
    async def test_delete_rejects_empty_keys_before_io(self, dict_repo, memory_service, partition_key, row_key):
        with pytest.raises(ValueError):
            await dict_repo.delete(partition_key, row_key)

        assert memory_service.entity_handles_built == 0

    @pytest.mark.parametrize("partition_key, row_key", [("", "r"), ("p", "")])
    async def test_update_rejects_empty_keys_before_io(self, dict_repo, memory_service, partition_key, row_key):
        with pytest.raises(ValueError):
            await dict_repo.update(partition_key, row_key, {"title": "x"})

        assert memory_service.entity_handles_built == 0

    async def test_update_rejects_empty_key_inside_entity(self, dict_repo, memory_service):
        """
        Behavior:
            - The arguments are valid but the entity carries an empty RowKey.
            - The key actually written is the one checked.
        """
        with pytest.raises(ValueError):
            await dict_repo.update("p", "r", {"PartitionKey": "p", "RowKey": "", "title": "x"})

        assert memory_service.entity_handles_built == 0

    @pytest.mark.parametrize(
        "record",
        [
            {"PartitionKey": "", "RowKey": "r", "title": "x"},
            {"PartitionKey": "p", "RowKey": "", "title": "x"},
            {"PartitionKey": "p", "title": "x"},
        ],
    )
    async def test_create_rejects_invalid_keys_before_io(self, dict_repo, memory_service, record):
        with pytest.raises(ValueError):
            await dict_repo.create(record)

        assert memory_service.entity_handles_built == 0
        assert memory_service.tables[TABLE_NAME] == {}

    async def test_create_rejects_empty_key_before_provisioning(self, provisioning_repo, memory_service):
        """
        Behavior:
            - Auto-provisioning is on and the table is missing.
            - An invalid key fails before the table is created.
        """
        memory_service.tables.clear()

        with pytest.raises(ValueError):
            await provisioning_repo.create({"PartitionKey": "", "RowKey": "r"})

        assert TABLE_NAME not in memory_service.tables
        assert memory_service.service_handles_built == 0


@pytest.mark.asyncio
class TestMetadataNamedProperties:

    async def test_dict_round_trip_keeps_every_property(self, dict_repo):
        """
        Behavior:
            - Store properties called etag, date, version, timestamp and friends.
            - create, find, find_all and update all return the caller's values.

        Importance:
            - Service metadata with the same names must never replace or remove
              entity properties.
        """
        # Arrange
        entity = {"PartitionKey": "p", "RowKey": "r", **METADATA_NAMED_PROPERTIES}

        # Act
        created = await dict_repo.create(entity)
        found = await dict_repo.find("p", "r")
        listed = await dict_repo.find_all()
        updated = await dict_repo.update("p", "r", {"title": "added"})

        # Assert
        assert created == entity
        assert found == entity
        assert listed == [entity]
        assert updated == {**entity, "title": "added"}

    async def test_model_round_trip_keeps_every_property(self, connection_manager):
        repo = TableRepository(connection_manager, TABLE_NAME, ModelEntityMapper(Release))
        release = Release(partition_key="app", row_key="1.0", version=3, date="2024-05-01", etag="mine")

        created = await repo.create(release)
        found = await repo.find("app", "1.0")
        updated = await repo.update("app", "1.0", {"version": 4})

        assert created == release
        assert found == release
        assert (updated.version, updated.date, updated.etag) == (4, "2024-05-01", "mine")

    async def test_keep_fields_read_from_service_metadata(self, connection_manager, memory_service):
        """
        Behavior:
            - The mapper asks for the etag explicitly.
            - The value comes from the service metadata, not from a property, and
              it is not written back as a property on update.
        """
        repo = TableRepository(connection_manager, TABLE_NAME, ModelEntityMapper(Release, keep_fields=["etag"]))
        await repo.create(Release(partition_key="app", row_key="2.0", version=1, date="d"))

        found = await repo.find("app", "2.0")
        read_etag = memory_service.row_metadata[(TABLE_NAME, ("app", "2.0"))]["etag"]
        updated = await repo.update("app", "2.0", found)

        assert found.etag == read_etag
        assert updated.etag == memory_service.row_metadata[(TABLE_NAME, ("app", "2.0"))]["etag"]
        assert "etag" not in memory_service.tables[TABLE_NAME][("app", "2.0")]

    async def test_patch_does_not_write_kept_metadata(self, connection_manager, memory_service):
        repo = TableRepository(connection_manager, TABLE_NAME, DictEntityMapper(keep_fields=["etag"]))
        await repo.create({"PartitionKey": "p", "RowKey": "r", "title": "t"})

        found = await repo.find("p", "r")
        await repo.update("p", "r", found)

        assert "etag" in found
        assert "etag" not in memory_service.tables[TABLE_NAME][("p", "r")]


class NothingMapper(DictEntityMapper):
    """Finds no entity data in any record."""

    def load(self, record):
        return None


@pytest.mark.asyncio
class TestEmptyStoredRecord:

    async def test_create_raises_when_nothing_maps_back(self, connection_manager, sample_entity_data):
        """
        Behavior:
            - The mapper finds no entity data in the service's answer to a create.
            - Expect RepositoryError instead of a None typed as the entity.
        """
        repo = TableRepository(connection_manager, TABLE_NAME, NothingMapper())

        with pytest.raises(RepositoryError) as exc_info:
            await repo.create(sample_entity_data)

        assert exc_info.value.message == "Error processing entity. create returned no entity data."

    async def test_update_raises_when_nothing_maps_back(self, connection_manager, created_entity):
        repo = TableRepository(connection_manager, TABLE_NAME, NothingMapper())

        with pytest.raises(RepositoryError, match="update returned no entity data"):
            await repo.update(created_entity["PartitionKey"], created_entity["RowKey"], {"title": "x"})
