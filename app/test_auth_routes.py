import unittest
import uuid
from unittest import mock

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError

from app.config import settings
from app.database import get_db
from app.main import create_app, lifespan
from app.models.user import User
from app.services.key_service import SigningKeyStore
from app.testing import SqliteDatabase
from app.utils.exceptions import KeyGenerationError

GENERIC_401 = {
    "success": False,
    "message": "Invalid or expired credentials",
    "error": {"code": "UNAUTHORIZED", "details": None, "field": None},
}


class AuthRoutesTestCase(unittest.TestCase):

    def setUp(self):
        self.database = SqliteDatabase()
        self.addCleanup(self.database.close)
        self.database.add_user(1, "alice@example.com", "Alice")
        self.database.add_user(2, "bob@example.com", "Bob")

        self.app = create_app(rotation_enabled=False)
        self.app.dependency_overrides[get_db] = self.database.get_db

        patcher = mock.patch("app.main.check_db_connection", return_value=True)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.client = TestClient(self.app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def login(self, user_id: int = 1, email: str = "alice@example.com") -> dict:
        """Mint a session the way a sign-in flow would."""
        with self.database.Session() as db:
            return self.app.state.token_manager.issue(db, user_id, email)

    def bearer(self, pair: dict) -> dict:
        return {"Authorization": f"Bearer {pair['accessToken']}"}

    def active_kid(self) -> str:
        return self.client.get("/.well-known/jwks.json").json()["keys"][0]["kid"]


class TestJwks(AuthRoutesTestCase):

    def test_jwks_is_public_and_unwrapped(self):
        response = self.client.get("/.well-known/jwks.json")

        self.assertEqual(response.status_code, 200)
        keys = response.json()["keys"]
        self.assertEqual(len(keys), 1)
        self.assertEqual(keys[0]["kid"], self.app.state.key_store.active_key().kid)
        self.assertEqual(keys[0]["kty"], "RSA")
        self.assertNotIn("d", keys[0])

    def test_health(self):
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")


class TestRefreshRoute(AuthRoutesTestCase):

    def test_refresh_returns_new_pair_in_envelope(self):
        pair = self.login()

        response = self.client.post("/api/v1/auth/refresh", json={"refreshToken": pair["refreshToken"]})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["message"], "Token refreshed")
        data = body["data"]
        self.assertEqual(data["tokenType"], "Bearer")
        self.assertNotEqual(data["refreshToken"], pair["refreshToken"])
        self.assertIn("accessTokenExpiresAt", data)
        self.assertIn("refreshTokenExpiresAt", data)

        me = self.client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {data['accessToken']}"})
        self.assertEqual(me.status_code, 200)

    def test_replayed_refresh_token_gets_generic_401(self):
        pair = self.login()
        first = self.client.post("/api/v1/auth/refresh", json={"refreshToken": pair["refreshToken"]})
        successor = first.json()["data"]["refreshToken"]

        with self.assertLogs("app.middleware.error_handler", level="ERROR") as logs:
            replay = self.client.post("/api/v1/auth/refresh", json={"refreshToken": pair["refreshToken"]})

        self.assertEqual(replay.status_code, 401)
        self.assertEqual(replay.json(), GENERIC_401)
        self.assertEqual(replay.headers["WWW-Authenticate"], "Bearer")
        self.assertIn("REUSE_DETECTED", logs.output[0])

        # the successor minted before the replay is dead too
        after = self.client.post("/api/v1/auth/refresh", json={"refreshToken": successor})
        self.assertEqual(after.status_code, 401)

    def test_failure_kinds_are_indistinguishable_to_the_client(self):
        pair = self.login()
        self.client.post("/api/v1/auth/refresh", json={"refreshToken": pair["refreshToken"]})

        reused = self.client.post("/api/v1/auth/refresh", json={"refreshToken": pair["refreshToken"]})
        malformed = self.client.post("/api/v1/auth/refresh", json={"refreshToken": "not-a-token"})
        unknown = self.client.post("/api/v1/auth/refresh", json={"refreshToken": str(uuid.uuid4())})

        for response in (reused, malformed, unknown):
            self.assertEqual(response.status_code, 401)
            self.assertEqual(response.content, reused.content)

    def test_blank_or_missing_token_is_validation_error(self):
        for payload in ({"refreshToken": "   "}, {}):
            with self.subTest(payload=payload):
                response = self.client.post("/api/v1/auth/refresh", json=payload)
                self.assertEqual(response.status_code, 422)
                self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")


class TestLogoutRoutes(AuthRoutesTestCase):

    def test_logout_kills_the_family(self):
        pair = self.login()
        rotated = self.client.post(
            "/api/v1/auth/refresh", json={"refreshToken": pair["refreshToken"]},
        ).json()["data"]

        response = self.client.post("/api/v1/auth/logout", json={"refreshToken": rotated["refreshToken"]})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"], "Logged out successfully")
        after = self.client.post("/api/v1/auth/refresh", json={"refreshToken": rotated["refreshToken"]})
        self.assertEqual(after.status_code, 401)

    def test_logout_all_requires_bearer_and_revokes_only_own_sessions(self):
        alice = [self.login() for _ in range(2)]
        bob = self.login(2, "bob@example.com")

        unauthenticated = self.client.post("/api/v1/auth/logout-all")
        self.assertEqual(unauthenticated.status_code, 401)

        response = self.client.post("/api/v1/auth/logout-all", headers=self.bearer(alice[0]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"], {"revoked": 2})
        for pair in alice:
            refreshed = self.client.post("/api/v1/auth/refresh", json={"refreshToken": pair["refreshToken"]})
            self.assertEqual(refreshed.status_code, 401)
        bob_refresh = self.client.post("/api/v1/auth/refresh", json={"refreshToken": bob["refreshToken"]})
        self.assertEqual(bob_refresh.status_code, 200)


class TestMeRoute(AuthRoutesTestCase):

    def test_me_returns_profile(self):
        response = self.client.get("/api/v1/auth/me", headers=self.bearer(self.login()))

        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["id"], 1)
        self.assertEqual(data["email"], "alice@example.com")
        self.assertEqual(data["displayName"], "Alice")

    def test_me_without_or_with_garbage_bearer(self):
        for headers in ({}, {"Authorization": "Bearer garbage"}, {"Authorization": "Basic abc"}):
            with self.subTest(headers=headers):
                response = self.client.get("/api/v1/auth/me", headers=headers)
                self.assertEqual(response.status_code, 401)
                self.assertEqual(response.json(), GENERIC_401)

    def test_deactivated_account_is_forbidden(self):
        pair = self.login()
        with self.database.Session() as db:
            db.get(User, 1).isActive = False
            db.commit()

        response = self.client.get("/api/v1/auth/me", headers=self.bearer(pair))

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "FORBIDDEN")


class TestAdminKeyRotation(AuthRoutesTestCase):

    def test_rotate_requires_bearer(self):
        response = self.client.post("/api/v1/admin/keys/rotate")

        self.assertEqual(response.status_code, 401)

    def test_rotate_invalidates_outstanding_access_tokens(self):
        pair = self.login()
        old_kid = self.active_kid()

        response = self.client.post("/api/v1/admin/keys/rotate", headers=self.bearer(pair))

        self.assertEqual(response.status_code, 200)
        new_kid = response.json()["data"]["kid"]
        self.assertNotEqual(new_kid, old_kid)
        self.assertEqual(self.active_kid(), new_kid)

        # including the token that asked for the rotation
        me = self.client.get("/api/v1/auth/me", headers=self.bearer(pair))
        self.assertEqual(me.status_code, 401)

        # refresh tokens are not tied to the signing key
        refreshed = self.client.post("/api/v1/auth/refresh", json={"refreshToken": pair["refreshToken"]})
        self.assertEqual(refreshed.status_code, 200)

    def test_failed_rotation_is_500_and_keeps_key(self):
        pair = self.login()
        old_kid = self.active_kid()
        client = TestClient(self.app, raise_server_exceptions=False)

        with mock.patch.object(
            self.app.state.key_store, "rotate", side_effect=KeyGenerationError("Key generation failed"),
        ):
            response = client.post("/api/v1/admin/keys/rotate", headers=self.bearer(pair))

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"]["code"], "INTERNAL_SERVER_ERROR")
        self.assertEqual(self.active_kid(), old_kid)


class TestErrorEnvelope(AuthRoutesTestCase):

    def test_validation_error_names_the_field(self):
        response = self.client.post("/api/v1/auth/refresh", json={})

        self.assertEqual(response.status_code, 422)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"]["code"], "VALIDATION_ERROR")
        self.assertEqual([d["field"] for d in body["error"]["details"]], ["refreshToken"])
        self.assertIsNone(body["error"]["field"])

    def test_database_error_is_a_generic_500(self):
        client = TestClient(self.app, raise_server_exceptions=False)
        pair = self.login()

        with mock.patch.object(
            self.app.state.token_manager, "rotate",
            side_effect=IntegrityError("INSERT INTO refresh_tokens", {}, Exception("duplicate key")),
        ):
            response = client.post("/api/v1/auth/refresh", json={"refreshToken": pair["refreshToken"]})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {
            "success": False,
            "message": "An unexpected error occurred. Please try again later.",
            "error": {"code": "INTERNAL_SERVER_ERROR", "details": None, "field": None},
        })
        self.assertNotIn("duplicate key", response.text)


def _pem(key, private: bool) -> str:
    if private:
        return key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode()
    return key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


class TestLifespan(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        patcher = mock.patch("app.main.check_db_connection", return_value=True)
        patcher.start()
        self.addCleanup(patcher.stop)

    async def test_startup_aborts_on_mismatched_configured_keys(self):
        one = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        app = create_app(rotation_enabled=False)

        with mock.patch.object(settings, "RSA_PUBLIC_KEY", _pem(one, private=False)), \
                mock.patch.object(settings, "RSA_PRIVATE_KEY", _pem(other, private=True)):
            with self.assertRaises(KeyGenerationError):
                async with lifespan(app):
                    pass

    async def test_startup_uses_configured_keys(self):
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        store = SigningKeyStore()
        app = create_app(key_store=store, rotation_enabled=False)

        with mock.patch.object(settings, "RSA_PUBLIC_KEY", _pem(key, private=False)), \
                mock.patch.object(settings, "RSA_PRIVATE_KEY", _pem(key, private=True)):
            async with lifespan(app):
                loaded = serialization.load_pem_public_key(store.active_key().public_pem.encode())
                self.assertEqual(loaded.public_numbers(), key.public_key().public_numbers())

    async def test_scheduler_runs_for_the_lifetime_of_the_app(self):
        app = create_app(rotation_enabled=True)
        scheduler = app.state.key_rotation_scheduler

        async with lifespan(app):
            self.assertTrue(scheduler.running)

        self.assertFalse(scheduler.running)


if __name__ == "__main__":
    unittest.main()
