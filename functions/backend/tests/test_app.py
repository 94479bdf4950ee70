import io
import unittest
from datetime import date
from unittest.mock import patch

from fastapi.testclient import TestClient
from PIL import Image

from backend.app import create_app
from backend.auth import StaticIdentityVerifier
from backend.db import InMemoryDbClient
from backend.dependencies import (
    get_db_client,
    get_draft_store,
    get_identity_verifier,
    get_storage_client,
)
from backend.drafts import InMemoryDraftStore
from backend.storage import InMemoryStorageClient

AUTH = {"Authorization": "Bearer user-1"}
OTHER_AUTH = {"Authorization": "Bearer user-2"}

MODULE_HTML = "<h2>Materi K3</h2><p>Keselamatan kerja <b>dasar</b> untuk operator.</p>"


def _png_bytes(width=40, height=20, fmt="PNG"):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(20, 120, 60)).save(buffer, format=fmt)
    return buffer.getvalue()


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.drafts = InMemoryDraftStore()
        app = create_app()
        app.dependency_overrides[get_db_client] = lambda: self.db
        app.dependency_overrides[get_storage_client] = lambda: self.storage
        app.dependency_overrides[get_draft_store] = lambda: self.drafts
        app.dependency_overrides[get_identity_verifier] = StaticIdentityVerifier
        self.client = TestClient(app)

    def create_scheme(self, name="Operator Boiler", price="Rp 1.500.000", headers=AUTH):
        response = self.client.post(
            "/api/schemes",
            json={
                "name": name,
                "price": price,
                "units": [
                    {"code": "K3.01", "name": "Menerapkan K3"},
                    {"code": "BLR.02", "name": "Mengoperasikan boiler"},
                ],
            },
            headers=headers,
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def create_module(self, title="Modul K3", content=MODULE_HTML):
        response = self.client.post(
            "/api/modules", json={"title": title, "content": content}, headers=AUTH
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def create_offer(self, scheme_id, **extra):
        body = {
            "scheme_id": scheme_id,
            "customer_name": "PT Energi Hijau",
            "offer_date": "2025-03-10",
            "user_request": "Sertifikasi untuk dua puluh operator",
        }
        body.update(extra)
        draft = self.client.post("/api/offers/drafts", json=body, headers=AUTH)
        self.assertEqual(draft.status_code, 201, draft.text)
        committed = self.client.post(
            f"/api/offers/drafts/{draft.json()['draft_id']}/commit", headers=AUTH
        )
        self.assertEqual(committed.status_code, 201, committed.text)
        return committed.json()


class HealthAndAuthTests(ApiTestCase):
    def test_healthz_needs_no_token(self):
        response = self.client.get("/healthz")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_missing_token_is_rejected(self):
        response = self.client.get("/api/schemes")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.headers["www-authenticate"], "Bearer")


class SchemeApiTests(ApiTestCase):
    def test_create_and_list_scheme(self):
        created = self.create_scheme()
        self.assertEqual(created["price"], 1500000)
        self.assertEqual(created["price_display"], "Rp 1.500.000")
        self.assertEqual(created["unit_count"], 2)

        listed = self.client.get("/api/schemes", headers=AUTH).json()
        self.assertEqual([s["id"] for s in listed], [created["id"]])

    def test_plain_price_is_normalized(self):
        created = self.create_scheme(price="1500000")
        self.assertEqual(created["price"], 1500000)

    def test_validation_errors_are_reported_per_field(self):
        response = self.client.post(
            "/api/schemes",
            json={"name": "AB", "price": "satu juta", "units": []},
            headers=AUTH,
        )
        self.assertEqual(response.status_code, 422)
        body = response.json()
        self.assertEqual(body["detail"], "Validation failed")
        self.assertIn("name", body["fields"])
        self.assertIn("units", body["fields"])
        self.assertIn("Invalid price format", body["fields"]["price"])

    def test_unit_code_minimum_length(self):
        response = self.client.post(
            "/api/schemes",
            json={"name": "Skema", "price": 1000, "units": [{"code": "K", "name": "x"}]},
            headers=AUTH,
        )
        self.assertEqual(response.status_code, 422)
        self.assertIn("units.0.code", response.json()["fields"])

    def test_patch_merges_fields(self):
        created = self.create_scheme()
        response = self.client.patch(
            f"/api/schemes/{created['id']}", json={"price": "Rp 2.000.000"}, headers=AUTH
        )
        self.assertEqual(response.status_code, 200)
        updated = response.json()
        self.assertEqual(updated["price"], 2000000)
        self.assertEqual(updated["name"], "Operator Boiler")
        self.assertEqual(updated["unit_count"], 2)

    def test_schemes_are_scoped_to_their_owner(self):
        created = self.create_scheme()
        response = self.client.get(f"/api/schemes/{created['id']}", headers=OTHER_AUTH)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.get("/api/schemes", headers=OTHER_AUTH).json(), [])

    def test_delete_scheme_keeps_offers(self):
        scheme = self.create_scheme()
        offer = self.create_offer(scheme["id"])

        response = self.client.delete(f"/api/schemes/{scheme['id']}", headers=AUTH)
        self.assertEqual(response.status_code, 204)

        detail = self.client.get(f"/api/offers/{offer['id']}", headers=AUTH)
        self.assertEqual(detail.status_code, 200)
        self.assertEqual(detail.json()["offer"]["scheme_name"], "Operator Boiler")
        self.assertIsNone(detail.json()["scheme"])


class OfferApiTests(ApiTestCase):
    def test_draft_round_trips_through_preview(self):
        scheme = self.create_scheme()
        module = self.create_module()
        created = self.client.post(
            "/api/offers/drafts",
            json={
                "scheme_id": scheme["id"],
                "customer_name": "PT Energi Hijau",
                "user_request": "Sertifikasi untuk dua puluh operator",
                "module_ids": [module["id"], module["id"]],
            },
            headers=AUTH,
        )
        self.assertEqual(created.status_code, 201, created.text)
        draft = created.json()
        self.assertEqual(draft["scheme_name"], "Operator Boiler")
        self.assertEqual(draft["offer_date"], date.today().isoformat())
        self.assertEqual(draft["module_ids"], [module["id"]])

        preview = self.client.get(
            f"/api/offers/drafts/{draft['draft_id']}", headers=AUTH
        )
        self.assertEqual(preview.status_code, 200)
        self.assertEqual(preview.json(), draft)

    def test_draft_validation(self):
        scheme = self.create_scheme()
        response = self.client.post(
            "/api/offers/drafts",
            json={"scheme_id": scheme["id"], "customer_name": "PT", "user_request": "pendek"},
            headers=AUTH,
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(
            set(response.json()["fields"]), {"customer_name", "user_request"}
        )

    def test_draft_with_unknown_scheme_or_module(self):
        response = self.client.post(
            "/api/offers/drafts",
            json={
                "scheme_id": "missing",
                "customer_name": "PT Energi",
                "user_request": "Sertifikasi operator boiler",
            },
            headers=AUTH,
        )
        self.assertEqual(response.status_code, 422)
        self.assertIn("scheme_id", response.json()["fields"])

        scheme = self.create_scheme()
        response = self.client.post(
            "/api/offers/drafts",
            json={
                "scheme_id": scheme["id"],
                "customer_name": "PT Energi",
                "user_request": "Sertifikasi operator boiler",
                "module_ids": ["nope"],
            },
            headers=AUTH,
        )
        self.assertEqual(response.status_code, 422)
        self.assertIn("module_ids", response.json()["fields"])

    def test_commit_persists_offer_and_removes_draft(self):
        scheme = self.create_scheme()
        draft = self.client.post(
            "/api/offers/drafts",
            json={
                "scheme_id": scheme["id"],
                "customer_name": "PT Energi Hijau",
                "offer_date": "2025-03-10",
                "user_request": "Sertifikasi untuk dua puluh operator",
            },
            headers=AUTH,
        ).json()

        committed = self.client.post(
            f"/api/offers/drafts/{draft['draft_id']}/commit", headers=AUTH
        )
        self.assertEqual(committed.status_code, 201)
        offer = committed.json()
        self.assertEqual(offer["offer_date"], "2025-03-10")
        self.assertEqual(offer["scheme_id"], scheme["id"])

        again = self.client.get(f"/api/offers/drafts/{draft['draft_id']}", headers=AUTH)
        self.assertEqual(again.status_code, 404)
        self.assertEqual(len(self.client.get("/api/offers", headers=AUTH).json()), 1)

    def test_commit_fails_when_scheme_was_deleted(self):
        scheme = self.create_scheme()
        draft = self.client.post(
            "/api/offers/drafts",
            json={
                "scheme_id": scheme["id"],
                "customer_name": "PT Energi Hijau",
                "user_request": "Sertifikasi untuk dua puluh operator",
            },
            headers=AUTH,
        ).json()
        self.client.delete(f"/api/schemes/{scheme['id']}", headers=AUTH)

        response = self.client.post(
            f"/api/offers/drafts/{draft['draft_id']}/commit", headers=AUTH
        )
        self.assertEqual(response.status_code, 409)

    def test_drafts_are_private(self):
        scheme = self.create_scheme()
        draft = self.client.post(
            "/api/offers/drafts",
            json={
                "scheme_id": scheme["id"],
                "customer_name": "PT Energi Hijau",
                "user_request": "Sertifikasi untuk dua puluh operator",
            },
            headers=AUTH,
        ).json()
        response = self.client.get(
            f"/api/offers/drafts/{draft['draft_id']}", headers=OTHER_AUTH
        )
        self.assertEqual(response.status_code, 404)

        discarded = self.client.delete(
            f"/api/offers/drafts/{draft['draft_id']}", headers=AUTH
        )
        self.assertEqual(discarded.status_code, 204)
        self.assertEqual(self.drafts.items, {})

    def test_patch_offer_switches_scheme(self):
        first = self.create_scheme()
        second = self.create_scheme(name="Teknisi Turbin")
        offer = self.create_offer(first["id"])

        response = self.client.patch(
            f"/api/offers/{offer['id']}",
            json={"scheme_id": second["id"], "customer_name": "PT Angin Segar"},
            headers=AUTH,
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["scheme_name"], "Teknisi Turbin")
        self.assertEqual(response.json()["customer_name"], "PT Angin Segar")

        bad = self.client.patch(
            f"/api/offers/{offer['id']}", json={"scheme_id": "missing"}, headers=AUTH
        )
        self.assertEqual(bad.status_code, 422)

    def test_delete_offer(self):
        offer = self.create_offer(self.create_scheme()["id"])
        response = self.client.delete(f"/api/offers/{offer['id']}", headers=AUTH)
        self.assertEqual(response.status_code, 204)
        missing = self.client.get(f"/api/offers/{offer['id']}", headers=AUTH)
        self.assertEqual(missing.status_code, 404)


class PrintApiTests(ApiTestCase):
    def test_print_layout_uses_default_parameters(self):
        scheme = self.create_scheme()
        module = self.create_module()
        offer = self.create_offer(scheme["id"], module_ids=[module["id"]])

        response = self.client.get(f"/api/offers/{offer['id']}/print", headers=AUTH)
        self.assertEqual(response.status_code, 200)
        layout = response.json()
        values = {f["key"]: f["value"] for f in layout["fields"]}
        self.assertEqual(values["customerName"], "PT Energi Hijau")
        self.assertEqual(values["offerDate"], "10 Maret 2025")
        self.assertEqual(values["price"], "Rp 1.500.000")
        self.assertEqual([m["id"] for m in layout["modules"]], [module["id"]])
        self.assertEqual(layout["signature"]["city"], "Yogyakarta")
        self.assertIsNone(layout["background_url"])

    def test_print_with_template_and_background(self):
        scheme = self.create_scheme()
        path = "backgrounds/user-1/kop.png"
        self.storage.upload_bytes(path, _png_bytes(), "image/png")
        template = self.client.post(
            "/api/templates",
            json={
                "name": "Kop Surat",
                "background_path": path,
                "parameters": [
                    {"id": "p1", "label": "Kepada", "key": "customerName",
                     "position": {"x": 5000, "y": -10}},
                    {"id": "p2", "label": "Catatan", "key": "notAField",
                     "position": {"x": 10, "y": 10}},
                ],
            },
            headers=AUTH,
        ).json()
        offer = self.create_offer(scheme["id"], template_id=template["id"])

        layout = self.client.get(f"/api/offers/{offer['id']}/print", headers=AUTH).json()
        self.assertIn(path, layout["background_url"])
        fields = {f["id"]: f for f in layout["fields"]}
        self.assertEqual(fields["p1"]["x"], 896.0)
        self.assertEqual(fields["p1"]["y"], 0.0)
        self.assertEqual(fields["p2"]["value"], "")

        pdf = self.client.get(f"/api/offers/{offer['id']}/print.pdf", headers=AUTH)
        self.assertEqual(pdf.status_code, 200)
        self.assertEqual(pdf.headers["content-type"], "application/pdf")
        self.assertTrue(pdf.content.startswith(b"%PDF"))

    def test_print_html(self):
        scheme = self.create_scheme()
        offer = self.create_offer(
            scheme["id"], customer_name="PT <Hijau> & Co", module_ids=[]
        )
        response = self.client.get(f"/api/offers/{offer['id']}/print.html", headers=AUTH)
        self.assertEqual(response.status_code, 200)
        self.assertIn("text/html", response.headers["content-type"])
        self.assertIn("PT &lt;Hijau&gt; &amp; Co", response.text)
        self.assertIn("Direktur", response.text)

    def test_draft_print_layout(self):
        scheme = self.create_scheme()
        draft = self.client.post(
            "/api/offers/drafts",
            json={
                "scheme_id": scheme["id"],
                "customer_name": "PT Energi Hijau",
                "user_request": "Sertifikasi untuk dua puluh operator",
            },
            headers=AUTH,
        ).json()
        response = self.client.get(
            f"/api/offers/drafts/{draft['draft_id']}/print", headers=AUTH
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["title"], "Surat Penawaran - PT Energi Hijau")


class ModuleApiTests(ApiTestCase):
    def test_create_sanitizes_content(self):
        module = self.create_module(
            content="<p onclick='x()'>Materi pelatihan lengkap</p><script>bad()</script>"
        )
        self.assertEqual(module["content"], "<p>Materi pelatihan lengkap</p>")

    def test_title_and_content_minimums(self):
        response = self.client.post(
            "/api/modules",
            json={"title": "ab", "content": "<p><b>pendek</b></p>"},
            headers=AUTH,
        )
        self.assertEqual(response.status_code, 422)
        fields = response.json()["fields"]
        self.assertIn("title", fields)
        self.assertIn("at least 10 characters", fields["content"])

    def test_preview_and_update(self):
        module = self.create_module()
        preview = self.client.get(f"/api/modules/{module['id']}/preview", headers=AUTH)
        self.assertEqual(preview.status_code, 200)
        self.assertEqual(preview.json()["title"], "Modul K3")
        self.assertEqual(
            preview.json()["text_length"],
            len("Materi K3 Keselamatan kerja dasar untuk operator."),
        )

        updated = self.client.patch(
            f"/api/modules/{module['id']}", json={"folder_id": "folder-1"}, headers=AUTH
        )
        self.assertEqual(updated.json()["folder_id"], "folder-1")
        self.assertEqual(updated.json()["content"], module["content"])

    def test_formatting_state(self):
        response = self.client.post(
            "/api/modules/formatting-state",
            json={"html": '<h1 align="center"><b>Judul</b></h1>'},
            headers=AUTH,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "bold": True,
                "italic": False,
                "underline": False,
                "heading": "h1",
                "font_size": None,
                "align": "center",
            },
        )

    def test_delete_module(self):
        module = self.create_module()
        self.assertEqual(
            self.client.delete(f"/api/modules/{module['id']}", headers=AUTH).status_code,
            204,
        )
        self.assertEqual(self.client.get("/api/modules", headers=AUTH).json(), [])


class TemplateApiTests(ApiTestCase):
    def create_template(self, parameters=None):
        response = self.client.post(
            "/api/templates",
            json={
                "name": "Kop Surat",
                "background_path": "backgrounds/user-1/kop.png",
                "parameters": parameters
                if parameters is not None
                else [
                    {"id": "p1", "label": "Kepada", "key": "customerName",
                     "position": {"x": 10, "y": 20}},
                ],
            },
            headers=AUTH,
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def test_list_includes_parameter_count(self):
        self.create_template()
        listed = self.client.get("/api/templates", headers=AUTH).json()
        self.assertEqual(listed[0]["parameter_count"], 1)

    def test_duplicate_parameter_ids_conflict(self):
        param = {"id": "p1", "label": "A", "key": "price", "position": {"x": 0, "y": 0}}
        response = self.client.post(
            "/api/templates",
            json={"name": "Kop", "background_path": "x.png", "parameters": [param, param]},
            headers=AUTH,
        )
        self.assertEqual(response.status_code, 409)

    def test_drag_clamps_and_persists(self):
        template = self.create_template()
        response = self.client.post(
            f"/api/templates/{template['id']}/parameters/p1/drag",
            json={
                "pointer_x": 900,
                "pointer_y": 50,
                "grab_offset_x": 10,
                "grab_offset_y": 5,
                "element_width": 100,
                "element_height": 20,
            },
            headers=AUTH,
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json(), {"id": "p1", "position": {"x": 796.0, "y": 45.0}})

        stored = self.client.get(f"/api/templates/{template['id']}", headers=AUTH).json()
        self.assertEqual(stored["parameters"][0]["position"], {"x": 796.0, "y": 45.0})

    def test_drag_unknown_parameter(self):
        template = self.create_template()
        response = self.client.post(
            f"/api/templates/{template['id']}/parameters/zz/drag",
            json={"pointer_x": 1, "pointer_y": 1},
            headers=AUTH,
        )
        self.assertEqual(response.status_code, 404)

    def test_patch_name_keeps_parameters(self):
        template = self.create_template()
        response = self.client.patch(
            f"/api/templates/{template['id']}", json={"name": "Kop Baru"}, headers=AUTH
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["name"], "Kop Baru")
        self.assertEqual(response.json()["parameters"], template["parameters"])

    def test_delete_template(self):
        template = self.create_template()
        response = self.client.delete(f"/api/templates/{template['id']}", headers=AUTH)
        self.assertEqual(response.status_code, 204)


class StorageApiTests(ApiTestCase):
    def test_upload_background(self):
        response = self.client.post(
            "/api/uploads/background",
            files={"file": ("kop.png", _png_bytes(120, 170), "image/png")},
            headers=AUTH,
        )
        self.assertEqual(response.status_code, 201, response.text)
        body = response.json()
        self.assertTrue(body["path"].startswith("backgrounds/user-1/"))
        self.assertTrue(body["path"].endswith(".png"))
        self.assertEqual((body["width"], body["height"]), (120, 170))
        self.assertEqual(self.storage.content_types[body["path"]], "image/png")

    def test_upload_rejects_non_images_and_unsupported_formats(self):
        not_image = self.client.post(
            "/api/uploads/background",
            files={"file": ("kop.png", b"not an image", "image/png")},
            headers=AUTH,
        )
        self.assertEqual(not_image.status_code, 400)

        gif = self.client.post(
            "/api/uploads/background",
            files={"file": ("kop.gif", _png_bytes(fmt="GIF"), "image/gif")},
            headers=AUTH,
        )
        self.assertEqual(gif.status_code, 415)

    def test_upload_rejects_oversized_dimensions(self):
        with patch.object(Image, "MAX_IMAGE_PIXELS", 1000):
            response = self.client.post(
                "/api/uploads/background",
                files={"file": ("kop.png", _png_bytes(120, 170), "image/png")},
                headers=AUTH,
            )
        self.assertEqual(response.status_code, 413)
        self.assertEqual(self.storage.stored_objects, {})

    def test_sign_url_is_limited_to_own_backgrounds(self):
        allowed = self.client.get(
            "/api/sign-url", params={"path": "backgrounds/user-1/a.png"}, headers=AUTH
        )
        self.assertEqual(allowed.status_code, 200)
        self.assertIn("backgrounds/user-1/a.png", allowed.json()["url"])

        for path in ("backgrounds/user-2/a.png", "backgrounds/user-1/../user-2/a.png"):
            with self.subTest(path=path):
                denied = self.client.get(
                    "/api/sign-url", params={"path": path}, headers=AUTH
                )
                self.assertEqual(denied.status_code, 403)


class DashboardApiTests(ApiTestCase):
    def test_counts_and_recent_offers(self):
        scheme = self.create_scheme()
        self.create_module()
        offers = [self.create_offer(scheme["id"]) for _ in range(6)]

        response = self.client.get("/api/dashboard", headers=AUTH)
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(
            (body["schemes"], body["offers"], body["modules"], body["templates"]),
            (1, 6, 1, 0),
        )
        self.assertEqual(len(body["recent_offers"]), 5)
        self.assertEqual(body["recent_offers"][0]["id"], offers[-1]["id"])


if __name__ == "__main__":
    unittest.main()
