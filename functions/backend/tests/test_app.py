import unittest
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from backend.app import create_app
from backend.capsules import InMemoryCapsuleStore
from backend.config import get_settings
from backend.dependencies import (
    get_capsule_store,
    get_functions_client,
    get_session_store,
    get_storage_client,
)
from backend.functions_client import InMemoryFunctionsClient
from backend.sessions import InMemorySessionStore, SessionError
from backend.storage import InMemoryStorageClient, media_path
from shared.api import SessionUser
from shared.constants import ENHANCE_FUNCTION_ID
from shared.envelope import decode_action_envelope

ENHANCED_BODY = {"enhancedText": "The lake shimmered.", "originalText": "lake day"}


def _date_capsule(**overrides):
    payload = {
        "title": "Summer",
        "content": "A day at the lake",
        "unlock_type": "date",
        "unlock_date": "2030-01-01T00:00:00Z",
        "is_public": False,
    }
    payload.update(overrides)
    return payload


class BackendApiTestCase(unittest.TestCase):
    def setUp(self):
        self.handler = MagicMock(return_value=(ENHANCED_BODY, 200))
        self.store = InMemoryCapsuleStore()
        self.functions = InMemoryFunctionsClient({ENHANCE_FUNCTION_ID: self.handler})
        self.sessions = InMemorySessionStore()
        self.storage = InMemoryStorageClient()

        self.app = create_app()
        self.app.dependency_overrides[get_capsule_store] = lambda: self.store
        self.app.dependency_overrides[get_functions_client] = lambda: self.functions
        self.app.dependency_overrides[get_session_store] = lambda: self.sessions
        self.app.dependency_overrides[get_storage_client] = lambda: self.storage
        self.client = TestClient(self.app)

    def _login(self, user_id: str) -> SessionUser:
        user = SessionUser(id=user_id, name=user_id.title())
        record = self.sessions.add_session(user)
        self.client.cookies.set(get_settings().session_cookie_name, record.session_id)
        return user


class EnhanceActionTests(BackendApiTestCase):
    def test_enhance_content_success(self):
        response = self.client.post(
            "/api/actions/enhance_content", data={"text": "lake day"}
        )

        self.assertEqual(response.status_code, 200)
        envelope = response.json()
        self.assertEqual(envelope["type"], "success")
        self.assertEqual(envelope["status"], 200)
        self.assertEqual(decode_action_envelope(envelope), ENHANCED_BODY)
        self.handler.assert_called_once_with({"text": "lake day"})

    def test_enhance_content_missing_text(self):
        response = self.client.post("/api/actions/enhance_content", data={})

        self.assertEqual(response.status_code, 400)
        envelope = response.json()
        self.assertEqual(envelope["type"], "failure")
        self.assertEqual(decode_action_envelope(envelope), {"error": "Text is required"})
        self.handler.assert_not_called()

    def test_enhance_content_function_error_body(self):
        self.handler.return_value = ({"error": "Function error: quota"}, 500)

        response = self.client.post(
            "/api/actions/enhance_content", data={"text": "lake day"}
        )

        self.assertEqual(response.status_code, 500)
        self.assertEqual(
            decode_action_envelope(response.json()), {"error": "Function error: quota"}
        )

    def test_enhance_content_execution_failure(self):
        self.handler.side_effect = RuntimeError("crashed")

        response = self.client.post(
            "/api/actions/enhance_content", data={"text": "lake day"}
        )

        self.assertEqual(response.status_code, 500)
        self.assertEqual(
            decode_action_envelope(response.json()),
            {"error": "Failed to enhance content"},
        )


class ExecutionRouteTests(BackendApiTestCase):
    def test_start_and_poll_execution(self):
        response = self.client.post("/api/executions", json={"text": "lake day"})

        self.assertEqual(response.status_code, 202)
        payload = response.json()
        self.assertEqual(payload["status"], "waiting")
        self.assertEqual(payload["function_id"], ENHANCE_FUNCTION_ID)

        # Background tasks have run by the time the test client returns.
        status_resp = self.client.get(f"/api/executions/{payload['execution_id']}")
        self.assertEqual(status_resp.status_code, 200)
        status_payload = status_resp.json()
        self.assertEqual(status_payload["status"], "completed")
        self.assertEqual(status_payload["response_status_code"], 200)

    def test_start_execution_requires_text(self):
        response = self.client.post("/api/executions", json={"text": ""})
        self.assertEqual(response.status_code, 422)

    def test_unknown_execution(self):
        response = self.client.get("/api/executions/missing")
        self.assertEqual(response.status_code, 404)


class SessionRouteTests(BackendApiTestCase):
    def test_anonymous_session_lifecycle(self):
        self.assertIsNone(self.client.get("/api/session").json()["user"])

        response = self.client.post("/api/session/anonymous")
        self.assertEqual(response.status_code, 200)
        user = response.json()["user"]
        self.assertTrue(user["is_anonymous"])
        self.assertIn(get_settings().session_cookie_name, response.cookies)

        self.assertEqual(self.client.get("/api/session").json()["user"]["id"], user["id"])

        delete_resp = self.client.delete("/api/session")
        self.assertEqual(delete_resp.status_code, 200)
        self.assertEqual(delete_resp.json(), {"status": "ok"})
        self.assertEqual(self.sessions.sessions, {})
        self.assertIsNone(self.client.get("/api/session").json()["user"])

    def test_anonymous_session_failure(self):
        failing = MagicMock()
        failing.create_anonymous_session.side_effect = SessionError("sign-up disabled")
        self.app.dependency_overrides[get_session_store] = lambda: failing

        response = self.client.post("/api/session/anonymous")

        self.assertEqual(response.status_code, 502)
        self.assertIn("sign-up disabled", response.json()["detail"])


class CapsuleRouteTests(BackendApiTestCase):
    def test_create_capsule_requires_session(self):
        response = self.client.post("/api/capsules", json=_date_capsule())
        self.assertEqual(response.status_code, 401)

    def test_create_and_get_capsule(self):
        self._login("alice")

        response = self.client.post("/api/capsules", json=_date_capsule())

        self.assertEqual(response.status_code, 201)
        capsule = response.json()
        self.assertEqual(capsule["created_by"], "alice")
        self.assertEqual(capsule["unlock_type"], "date")
        self.assertFalse(capsule["is_unlocked"])
        self.assertEqual(capsule["media_files"], [])

        get_resp = self.client.get(f"/api/capsules/{capsule['id']}")
        self.assertEqual(get_resp.status_code, 200)
        self.assertEqual(get_resp.json()["title"], "Summer")

    def test_create_capsule_with_mismatched_condition(self):
        self._login("alice")

        response = self.client.post(
            "/api/capsules",
            json=_date_capsule(unlock_type="event", unlock_event=None),
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("unlock_event", response.json()["detail"])

    def test_private_capsule_hidden_from_others(self):
        self._login("alice")
        capsule_id = self.client.post("/api/capsules", json=_date_capsule()).json()["id"]

        self._login("bob")
        self.assertEqual(self.client.get(f"/api/capsules/{capsule_id}").status_code, 404)

        self.client.cookies.clear()
        self.assertEqual(self.client.get(f"/api/capsules/{capsule_id}").status_code, 404)

    def test_list_public_and_own_capsules(self):
        self._login("alice")
        self.client.post("/api/capsules", json=_date_capsule(title="Private"))
        self.client.post(
            "/api/capsules", json=_date_capsule(title="Public", is_public=True)
        )

        public = self.client.get("/api/capsules/public").json()["capsules"]
        self.assertEqual([c["title"] for c in public], ["Public"])

        mine = self.client.get("/api/capsules/mine").json()["capsules"]
        self.assertEqual({c["title"] for c in mine}, {"Private", "Public"})

    def test_list_public_capsules_store_error(self):
        broken = MagicMock()
        broken.list_public_capsules.side_effect = RuntimeError("unavailable")
        self.app.dependency_overrides[get_capsule_store] = lambda: broken

        response = self.client.get("/api/capsules/public")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"capsules": []})

    def test_update_capsule(self):
        self._login("alice")
        capsule_id = self.client.post(
            "/api/capsules", json=_date_capsule(is_public=True, collaborators=["carol"])
        ).json()["id"]

        self._login("bob")
        forbidden = self.client.patch(
            f"/api/capsules/{capsule_id}", json={"title": "Mine now"}
        )
        self.assertEqual(forbidden.status_code, 403)

        self._login("carol")
        response = self.client.patch(
            f"/api/capsules/{capsule_id}",
            json={
                "unlock_type": "location",
                "unlock_date": None,
                "unlock_location": {"latitude": 48.85, "longitude": 2.35, "radius": 100},
            },
        )
        self.assertEqual(response.status_code, 200)
        capsule = response.json()
        self.assertEqual(capsule["unlock_type"], "location")
        self.assertEqual(capsule["unlock_location"]["radius"], 100)
        self.assertEqual(capsule["title"], "Summer")

    def test_upload_media(self):
        self._login("alice")
        capsule_id = self.client.post("/api/capsules", json=_date_capsule()).json()["id"]

        response = self.client.post(
            f"/api/capsules/{capsule_id}/media",
            files={"file": ("beach.png", b"png-bytes", "image/png")},
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        file_id = payload["file_id"]
        self.assertEqual(payload["capsule"]["media_files"], [file_id])
        self.assertEqual(
            payload["capsule"]["media_metadata"][file_id],
            {"name": "beach.png", "type": "image/png", "size": 9},
        )
        self.assertEqual(
            self.storage.stored_objects[media_path(capsule_id, file_id)], b"png-bytes"
        )

    def test_update_capsule_rejects_null_for_required_fields(self):
        self._login("alice")
        capsule_id = self.client.post(
            "/api/capsules", json=_date_capsule(collaborators=["carol"])
        ).json()["id"]

        for field in ("title", "collaborators", "tags", "is_public"):
            with self.subTest(field=field):
                response = self.client.patch(
                    f"/api/capsules/{capsule_id}", json={field: None}
                )
                self.assertEqual(response.status_code, 400)
                self.assertIn(field, response.json()["detail"])

        stored = self.store.get_capsule(capsule_id)
        self.assertEqual(stored.title, "Summer")
        self.assertEqual(stored.collaborators, ["carol"])
        self.assertEqual(self.client.get(f"/api/capsules/{capsule_id}").status_code, 200)

    def test_update_capsule_clears_optional_unlock_fields(self):
        self._login("alice")
        capsule_id = self.client.post(
            "/api/capsules", json=_date_capsule(event_type="birthday")
        ).json()["id"]

        response = self.client.patch(
            f"/api/capsules/{capsule_id}", json={"event_type": None}
        )

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["event_type"])

    def _upload(self, capsule_id):
        return self.client.post(
            f"/api/capsules/{capsule_id}/media",
            files={"file": ("beach.png", b"png-bytes", "image/png")},
        ).json()["file_id"]

    def test_sign_url_for_capsule_media(self):
        self._login("alice")
        capsule_id = self.client.post(
            "/api/capsules", json=_date_capsule(is_public=True)
        ).json()["id"]
        file_id = self._upload(capsule_id)
        path = media_path(capsule_id, file_id)

        for op in ("get", "put"):
            with self.subTest(op=op):
                response = self.client.get(
                    "/api/media/sign-url", params={"path": path, "op": op}
                )
                self.assertEqual(response.status_code, 200)
                self.assertIn(path, response.json()["url"])
                self.assertIn(f"op={op}", response.json()["url"])

        # Viewers of a public capsule may read its attached media.
        self._login("mallory")
        response = self.client.get("/api/media/sign-url", params={"path": path})
        self.assertEqual(response.status_code, 200)

    def test_sign_url_put_requires_edit_access(self):
        self._login("alice")
        capsule_id = self.client.post(
            "/api/capsules", json=_date_capsule(is_public=True)
        ).json()["id"]
        file_id = self._upload(capsule_id)

        self._login("mallory")
        response = self.client.get(
            "/api/media/sign-url",
            params={"path": media_path(capsule_id, file_id), "op": "put"},
        )

        self.assertEqual(response.status_code, 403)

    def test_sign_url_get_requires_view_access_and_attached_file(self):
        self._login("alice")
        capsule_id = self.client.post("/api/capsules", json=_date_capsule()).json()["id"]
        file_id = self._upload(capsule_id)

        unattached = self.client.get(
            "/api/media/sign-url",
            params={"path": media_path(capsule_id, "not-attached")},
        )
        self.assertEqual(unattached.status_code, 404)

        self._login("mallory")
        private = self.client.get(
            "/api/media/sign-url", params={"path": media_path(capsule_id, file_id)}
        )
        self.assertEqual(private.status_code, 404)

    def test_sign_url_rejects_other_paths(self):
        self._login("alice")

        for path in ("foo/bar.png", "capsules/abc", "capsules/../secret/x"):
            with self.subTest(path=path):
                response = self.client.get(
                    "/api/media/sign-url", params={"path": path}
                )
                self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
    unittest.main()
