"""Integration tests for the upload, relay and status workflow."""

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.services import report_store
from backend.app.services.blob_directory import BlobDirectory
from backend.app.services.status_poller import StatusPoller


WAV_BYTES = b"RIFF\x24\x00\x00\x00WAVEfmt "


async def post_file(
    client: AsyncClient,
    url: str,
    filename: str,
    content: bytes,
    content_type: str,
    **form: str,
):
    return await client.post(url, files={"file": (filename, content, content_type)}, data=form)


async def get_report(client: AsyncClient, report_id: str, user_id: str) -> dict:
    response = await client.get(f"/reports/{report_id}/users/{user_id}/")
    assert response.status_code == 200
    reports = response.json()["reports"]
    assert len(reports) == 1
    return reports[0]


class TestUploadAudio:
    """Test uploading audio that is relayed for transcription."""

    @pytest.mark.asyncio
    async def test_upload_wav_creates_report_and_starts_job(
        self, test_client_with_db: AsyncClient, upload_root, fake_workstation
    ):
        """Test the full happy path for a new report."""
        response = await post_file(
            test_client_with_db,
            "/reports/r1/users/u1",
            "lecture.wav",
            WAV_BYTES,
            "audio/wav",
            gradeLevel="7",
            subject="Science",
            reportName="Photosynthesis",
        )

        assert response.status_code == 200
        body = response.json()
        assert body["flag"] is True
        assert body["code"] == 200
        assert body["data"]["fileName"] == "lecture.wav"
        assert body["data"]["job_id"] == "job-1"
        assert body["uploadStatus"] == "successful"
        assert body["transferStatus"] == "successful"
        assert body["transferData"]["jobId"] == "job-1"
        assert body["transferData"]["progress"] == "splitting"

        destination = upload_root / "u1" / "r1" / "lecture.wav"
        assert destination.read_bytes() == WAV_BYTES
        assert not (upload_root / settings.temporary_dir_name / "u1" / "lecture.wav").exists()
        assert fake_workstation.started[0][1] == "r1"

        report = await get_report(test_client_with_db, "r1", "u1")
        assert report["gradeLevel"] == "7"
        assert report["subject"] == "Science"
        assert report["reportName"] == "Photosynthesis"
        assert report["audioFile"] == "lecture.wav"
        assert report["status"] == "processing"
        assert [f["fileName"] for f in report["files"]] == ["lecture"]
        assert report["files"][0]["fileType"] == "audio/wav"
        assert report["files"][0]["filePath"] == str(destination.resolve())

    @pytest.mark.asyncio
    async def test_fire_and_forget_relay(
        self, test_client_with_db: AsyncClient, fake_workstation, monkeypatch
    ):
        """Test relay without job tracking."""
        monkeypatch.setattr(settings, "relay_mode", "fire_and_forget")

        response = await post_file(
            test_client_with_db, "/reports/r1/users/u1", "lecture.mp3", b"ID3", "audio/mpeg"
        )

        body = response.json()
        assert response.status_code == 200
        assert body["transferStatus"] == "successful"
        assert "job_id" not in body["data"]
        assert len(fake_workstation.submitted) == 1

    @pytest.mark.asyncio
    async def test_transfer_failure_keeps_upload(
        self, test_client_with_db: AsyncClient, upload_root, fake_workstation
    ):
        """Test a Workstation failure is a 500 but the stored file survives."""
        fake_workstation.fail = True

        response = await post_file(
            test_client_with_db, "/reports/r1/users/u1", "lecture.wav", WAV_BYTES, "audio/wav"
        )

        assert response.status_code == 500
        body = response.json()
        assert body["flag"] is False
        assert body["code"] == 500
        assert body["message"] == "An error occurred"
        assert body["uploadStatus"] == "successful"
        assert body["transferStatus"] == "failed"

        assert (upload_root / "u1" / "r1" / "lecture.wav").exists()
        report = await get_report(test_client_with_db, "r1", "u1")
        assert len(report["files"]) == 1
        assert report["transferData"] is None


class TestUploadDocuments:
    """Test uploading non-audio files."""

    @pytest.mark.asyncio
    async def test_upload_csv_not_relayed(self, test_client_with_db: AsyncClient, fake_workstation):
        """Test non-audio files are stored but not transferred."""
        response = await post_file(
            test_client_with_db,
            "/reports/r1/users/u1/files",
            "seating.csv",
            b"name,row\nAda,1\n",
            "text/csv",
        )

        body = response.json()
        assert response.status_code == 200
        assert body["uploadStatus"] == "successful"
        assert "transferStatus" not in body
        assert fake_workstation.started == []
        assert fake_workstation.submitted == []

    @pytest.mark.asyncio
    async def test_provided_file_name(self, test_client_with_db: AsyncClient, upload_root):
        """Test the fileName form field names the stored file."""
        response = await post_file(
            test_client_with_db,
            "/reports/r1/users/u1/files",
            "scan-0001.pdf",
            b"%PDF-1.4",
            "application/pdf",
            fileName="lesson-plan",
        )

        assert response.status_code == 200
        assert response.json()["data"]["fileName"] == "lesson-plan"
        assert (upload_root / "u1" / "r1" / "lesson-plan.pdf").exists()

        report = await get_report(test_client_with_db, "r1", "u1")
        assert [f["fileName"] for f in report["files"]] == ["lesson-plan"]

    @pytest.mark.asyncio
    async def test_reupload_replaces_manifest_entry(self, test_client_with_db: AsyncClient, upload_root):
        """Test re-uploading a file with the same name replaces it in place."""
        await post_file(test_client_with_db, "/reports/r1/users/u1/files", "a.json", b"{}", "application/json")
        await post_file(test_client_with_db, "/reports/r1/users/u1/files", "notes.csv", b"v1", "text/csv")
        await post_file(test_client_with_db, "/reports/r1/users/u1/files", "b.json", b"[]", "application/json")

        response = await post_file(
            test_client_with_db, "/reports/r1/users/u1/files", "notes.csv", b"v2", "text/csv"
        )

        assert response.status_code == 200
        report = await get_report(test_client_with_db, "r1", "u1")
        assert [f["fileName"] for f in report["files"]] == ["a", "notes", "b"]
        assert (upload_root / "u1" / "r1" / "notes.csv").read_bytes() == b"v2"


class TestUploadValidation:
    """Test rejected uploads."""

    @pytest.mark.asyncio
    async def test_unsupported_type_rejected(self, test_client_with_db: AsyncClient, upload_root):
        """Test a file outside the allow-list is rejected and its staged copy removed."""
        response = await post_file(
            test_client_with_db, "/reports/r1/users/u1/files", "notes.txt", b"hello", "text/plain"
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == 400
        assert body["flag"] is False
        assert body["message"] == "Invalid file type provided"
        assert not (upload_root / settings.temporary_dir_name / "u1" / "notes.txt").exists()
        assert not (upload_root / "u1" / "r1").exists()

        status_response = await test_client_with_db.get("/reports/r1/users/u1/")
        assert status_response.json()["reports"] == []

    @pytest.mark.asyncio
    async def test_unsupported_type_on_existing_report(self, test_client_with_db: AsyncClient):
        """Test a rejected file leaves an existing manifest untouched."""
        await post_file(test_client_with_db, "/reports/r1/users/u1/files", "notes.csv", b"x", "text/csv")

        response = await post_file(
            test_client_with_db, "/reports/r1/users/u1/files", "notes.txt", b"hello", "text/plain"
        )

        assert response.status_code == 400
        report = await get_report(test_client_with_db, "r1", "u1")
        assert [f["fileName"] for f in report["files"]] == ["notes"]

    @pytest.mark.asyncio
    async def test_file_required_on_upload_route(self, test_client_with_db: AsyncClient):
        response = await test_client_with_db.post("/reports/r1/users/u1/files", data={"subject": "Math"})

        assert response.status_code == 400
        assert response.json()["message"] == "File is required"

    @pytest.mark.asyncio
    async def test_blank_user_id(self, test_client_with_db: AsyncClient):
        response = await post_file(
            test_client_with_db, "/reports/r1/users/%20/files", "notes.csv", b"x", "text/csv"
        )

        assert response.status_code == 400
        assert response.json()["message"] == "userId is required"

    @pytest.mark.asyncio
    async def test_blank_report_id(self, test_client_with_db: AsyncClient):
        response = await post_file(
            test_client_with_db, "/reports/%20/users/u1/files", "notes.csv", b"x", "text/csv"
        )

        assert response.status_code == 400
        assert response.json()["message"] == "reportId is required"

    @pytest.mark.asyncio
    async def test_upload_too_large(self, test_client_with_db: AsyncClient, upload_root, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_size", 8)

        response = await post_file(
            test_client_with_db, "/reports/r1/users/u1/files", "notes.csv", b"0123456789", "text/csv"
        )

        assert response.status_code == 400
        assert response.json()["message"] == "File is too large"
        assert not (upload_root / settings.temporary_dir_name / "u1" / "notes.csv").exists()


class TestCreateReport:
    """Test the report-creation route."""

    @pytest.mark.asyncio
    async def test_create_without_file(self, test_client_with_db: AsyncClient):
        response = await test_client_with_db.post(
            "/reports/r1/users/u1",
            data={"gradeLevel": "4", "subject": "Reading", "reportName": "Story time"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Database entry successfully created without file upload"
        assert body["data"]["file"] == "No file uploaded"

        report = await get_report(test_client_with_db, "r1", "u1")
        assert report["reportName"] == "Story time"
        assert report["files"] == []

    @pytest.mark.asyncio
    async def test_create_twice_is_duplicate(self, test_client_with_db: AsyncClient):
        first = await test_client_with_db.post("/reports/r1/users/u1", data={"subject": "Math"})
        second = await test_client_with_db.post("/reports/r1/users/u1", data={"subject": "Math"})

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["message"] == "A report with the given report ID already exists for this user"

    @pytest.mark.asyncio
    async def test_duplicate_with_file_stages_nothing(self, test_client_with_db: AsyncClient, upload_root):
        await test_client_with_db.post("/reports/r1/users/u1")

        response = await post_file(
            test_client_with_db, "/reports/r1/users/u1", "lecture.wav", WAV_BYTES, "audio/wav"
        )

        assert response.status_code == 400
        assert not (upload_root / settings.temporary_dir_name / "u1" / "lecture.wav").exists()


class TestTranscriptionProgress:
    """Test observing a job from dispatch to finished transcript."""

    @pytest.mark.asyncio
    async def test_poll_until_finished(self, test_client_with_db: AsyncClient, sample_transcript):
        """Test the poller sees every stage as the Workstation reports them."""
        response = await post_file(
            test_client_with_db, "/reports/r1/users/u1", "lecture.wav", WAV_BYTES, "audio/wav"
        )
        assert response.json()["transferData"]["progress"] == "splitting"

        next_stage = {
            "splitting": {"progress": "loading-nemo"},
            "loading-nemo": {"progress": "transcribing"},
            "transcribing": {"progress": "aligning"},
            "aligning": {"progress": "finished", "status": "completed", "result": sample_transcript},
        }
        seen = []

        async def advance(update):
            seen.append((update.progress, update.indicator))
            if update.progress in next_stage:
                pushed = await test_client_with_db.put(
                    "/reports/r1/users/u1/transfer", json=next_stage[update.progress]
                )
                assert pushed.status_code == 200

        poller = StatusPoller("http://test", "r1", "u1", interval=0, client=test_client_with_db)
        result = await poller.run(on_update=advance)

        assert result == sample_transcript
        assert seen == [
            ("splitting", 20),
            ("loading-nemo", 40),
            ("transcribing", 60),
            ("aligning", 80),
            ("finished", 100),
        ]

        report = await get_report(test_client_with_db, "r1", "u1")
        assert report["status"] == "completed"
        assert report["transferData"]["result"] == sample_transcript

    @pytest.mark.asyncio
    async def test_poll_from_job_dispatched_at_started(
        self, test_client_with_db: AsyncClient, fake_workstation, sample_transcript
    ):
        """Test a job still at "started" when dispatched is followed to completion."""
        fake_workstation.job_status = {
            "status": "processing",
            "progress": "started",
            "messages": ["Job queued"],
            "result": None,
        }
        response = await post_file(
            test_client_with_db, "/reports/r1/users/u1", "lecture.wav", WAV_BYTES, "audio/wav"
        )
        assert response.json()["transferData"]["progress"] == "started"

        next_stage = {
            "started": {"progress": "splitting"},
            "splitting": {"progress": "finished", "status": "completed", "result": sample_transcript},
        }
        seen = []

        async def advance(update):
            seen.append((update.progress, update.indicator))
            if update.progress in next_stage:
                await test_client_with_db.put("/reports/r1/users/u1/transfer", json=next_stage[update.progress])

        poller = StatusPoller("http://test", "r1", "u1", interval=0, client=test_client_with_db)
        result = await poller.run(on_update=advance)

        assert result == sample_transcript
        assert seen == [("started", 0), ("splitting", 20), ("finished", 100)]


class TestStorageFailures:
    """Test failures after the file has been staged."""

    @pytest.mark.asyncio
    async def test_move_failure(self, test_client_with_db: AsyncClient, upload_root, monkeypatch):
        """Test a failed move reports the upload as failed and removes the staged copy."""
        def refuse_move(self, source, destination):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(BlobDirectory, "relocate", refuse_move)

        response = await post_file(
            test_client_with_db, "/reports/r1/users/u1/files", "notes.csv", b"x", "text/csv"
        )

        assert response.status_code == 500
        body = response.json()
        assert body["flag"] is False
        assert body["message"] == "An error occurred"
        assert body["uploadStatus"] == "failed"
        assert "transferStatus" not in body
        assert not (upload_root / settings.temporary_dir_name / "u1" / "notes.csv").exists()
        assert not (upload_root / "u1" / "r1" / "notes.csv").exists()

    @pytest.mark.asyncio
    async def test_manifest_failure_keeps_moved_file(
        self, test_client_with_db: AsyncClient, upload_root, monkeypatch
    ):
        """Test a rejected manifest commit is a 500 and the moved file stays on disk."""
        await test_client_with_db.post("/reports/r1/users/u1")

        async def locked_commit(self):
            raise OperationalError("UPDATE reports", {}, Exception("database is locked"))

        monkeypatch.setattr(AsyncSession, "commit", locked_commit)

        response = await post_file(
            test_client_with_db, "/reports/r1/users/u1/files", "notes.csv", b"x", "text/csv"
        )

        assert response.status_code == 500
        body = response.json()
        assert body["message"] == "An error occurred"
        assert body["uploadStatus"] == "failed"
        assert "transferStatus" not in body
        assert (upload_root / "u1" / "r1" / "notes.csv").read_bytes() == b"x"

        report = await get_report(test_client_with_db, "r1", "u1")
        assert report["files"] == []

    @pytest.mark.asyncio
    async def test_upload_route_joins_concurrently_created_report(
        self, test_client_with_db: AsyncClient, upload_root, monkeypatch
    ):
        """Test losing the report-creation race still stores the file on the winner's report."""
        await test_client_with_db.post("/reports/r1/users/u1", data={"subject": "Math"})
        lookup = report_store.get_report
        lookups = []

        async def stale_first_lookup(db, user_id, report_id):
            lookups.append(report_id)
            if len(lookups) == 1:
                return None
            return await lookup(db, user_id, report_id)

        monkeypatch.setattr(report_store, "get_report", stale_first_lookup)

        response = await post_file(
            test_client_with_db, "/reports/r1/users/u1/files", "notes.csv", b"x", "text/csv"
        )

        assert response.status_code == 200
        report = await get_report(test_client_with_db, "r1", "u1")
        assert report["subject"] == "Math"
        assert [f["fileName"] for f in report["files"]] == ["notes"]
        assert not (upload_root / settings.temporary_dir_name / "u1" / "notes.csv").exists()

    @pytest.mark.asyncio
    async def test_create_route_race_removes_staged_file(
        self, test_client_with_db: AsyncClient, upload_root, monkeypatch
    ):
        """Test a create that loses the race is a duplicate and leaves no staged file."""
        await test_client_with_db.post("/reports/r1/users/u1")
        lookup = report_store.get_report
        lookups = []

        async def stale_first_lookup(db, user_id, report_id):
            lookups.append(report_id)
            if len(lookups) == 1:
                return None
            return await lookup(db, user_id, report_id)

        monkeypatch.setattr(report_store, "get_report", stale_first_lookup)

        response = await post_file(
            test_client_with_db, "/reports/r1/users/u1", "lecture.wav", WAV_BYTES, "audio/wav"
        )

        assert response.status_code == 400
        assert response.json()["message"] == "A report with the given report ID already exists for this user"
        assert not (upload_root / settings.temporary_dir_name / "u1" / "lecture.wav").exists()
