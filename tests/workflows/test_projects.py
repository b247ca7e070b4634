"""Tests for ProjectStore."""

from __future__ import annotations

from sqlalchemy import select

from studio_jobs.core.orm.tables import ProjectStorageRootTable


def _roots(sessions, project_id):
    with sessions() as session:
        rows = session.execute(
            select(
                ProjectStorageRootTable.root_key,
                ProjectStorageRootTable.folder_relpath,
                ProjectStorageRootTable.is_primary,
            )
            .where(ProjectStorageRootTable.project_id == project_id)
            .order_by(ProjectStorageRootTable.root_key)
        ).all()
    return [tuple(row) for row in rows]


class TestReads:
    def test_get_project_and_client(self, seed_project, projects):
        project_id = seed_project(delivery_emails=["producer@northwind.example"], metadata={"k": "v"})

        project = projects.get_project(project_id)
        client = projects.get_client(project.client_id)

        assert project.project_code == "NW-0042"
        assert project.status_key == "ready_to_provision"
        assert project.metadata == {"k": "v"}
        assert client.display_name == "Northwind Films"
        assert client.delivery_emails == ["producer@northwind.example"]

    def test_missing(self, projects):
        assert projects.get_project("prj_missing") is None
        assert projects.get_client(None) is None
        assert projects.get_client("cli_missing") is None


class TestWrites:
    def test_update_status(self, seed_project, projects):
        project_id = seed_project()

        projects.update_status(project_id, "provisioning")

        assert projects.get_project(project_id).status_key == "provisioning"

    def test_update_metadata(self, seed_project, projects):
        project_id = seed_project()

        projects.update_metadata(project_id, {"archiving": {"runs": []}})

        assert projects.get_project(project_id).metadata == {"archiving": {"runs": []}}


class TestStorageRoots:
    def test_insert_then_update(self, seed_project, projects, sessions):
        project_id = seed_project()

        assert projects.upsert_storage_root(project_id, "lucidlink", "main", "Clients/Northwind/NW-0042") is None
        assert projects.upsert_storage_root(project_id, "lucidlink", "main", "Clients/Northwind/NW-0042b") is None

        assert _roots(sessions, project_id) == [("main", "Clients/Northwind/NW-0042b", True)]
        assert projects.get_storage_root_relpath(project_id, "lucidlink") == "Clients/Northwind/NW-0042b"

    def test_new_root_becomes_primary(self, seed_project, projects, sessions):
        project_id = seed_project()
        projects.upsert_storage_root(project_id, "lucidlink", "archive", "Archive/NW-0042")
        projects.upsert_storage_root(project_id, "lucidlink", "main", "Clients/NW-0042")

        assert _roots(sessions, project_id) == [
            ("archive", "Archive/NW-0042", False),
            ("main", "Clients/NW-0042", True),
        ]
        assert projects.get_storage_root_relpath(project_id, "lucidlink") == "Clients/NW-0042"

    def test_other_providers_untouched(self, seed_project, projects):
        project_id = seed_project()
        projects.upsert_storage_root(project_id, "dropbox", "main", "Clients/NW-0042")
        projects.upsert_storage_root(project_id, "lucidlink", "main", "Projects/NW-0042")

        assert projects.get_storage_root_relpath(project_id, "dropbox") == "Clients/NW-0042"
        assert projects.get_storage_root_relpath(project_id, "nas") is None

    def test_failure_returns_message(self, projects):
        # foreign key violation: the project does not exist
        error = projects.upsert_storage_root("prj_missing", "dropbox", "main", "x")

        assert error is not None
        assert error.startswith("Storage root upsert failed: ")
