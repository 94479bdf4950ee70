import unittest
from datetime import date

from backend.db import OWNER_KEY, SCHEMES_COLLECTION, InMemoryDbClient, PostgresDbClient
from backend.errors import NotFoundError
from backend.repository import offer_repository, scheme_repository, template_repository
from shared.types import Position, Scheme, TemplateParameter, TrainingUnit

SCHEME_FIELDS = {
    "name": "Operator Boiler",
    "units": [{"code": "K3.01", "name": "Menerapkan K3"}],
    "price": 1500000,
}


class RepositoryTestMixin:
    def make_db(self):
        raise NotImplementedError

    def setUp(self):
        self.db = self.make_db()
        self.schemes = scheme_repository(self.db)

    def test_create_returns_record_with_owner_and_timestamps(self):
        scheme = self.schemes.create("u1", SCHEME_FIELDS)
        self.assertIsInstance(scheme, Scheme)
        self.assertEqual(scheme.user_id, "u1")
        self.assertEqual(scheme.units, [TrainingUnit("K3.01", "Menerapkan K3")])
        self.assertEqual(scheme.created_at, scheme.updated_at)

        stored = self.db.get_document(SCHEMES_COLLECTION, scheme.id)
        self.assertEqual(stored[OWNER_KEY], "u1")
        self.assertIn("createdAt", stored)

    def test_create_ignores_client_supplied_owner(self):
        scheme = self.schemes.create("u1", {**SCHEME_FIELDS, "user_id": "u2"})
        self.assertEqual(scheme.user_id, "u1")

    def test_get_hides_other_owners_documents(self):
        scheme = self.schemes.create("u1", SCHEME_FIELDS)
        with self.assertRaises(NotFoundError):
            self.schemes.get(scheme.id, "u2")
        self.assertIsNone(self.schemes.find(scheme.id, "u2"))
        self.assertIsNone(self.schemes.find("missing", "u1"))

    def test_list_is_newest_first(self):
        first = self.schemes.create("u1", SCHEME_FIELDS)
        second = self.schemes.create("u1", {**SCHEME_FIELDS, "name": "Teknisi"})
        self.schemes.create("u2", SCHEME_FIELDS)
        self.assertEqual([s.id for s in self.schemes.list("u1")], [second.id, first.id])
        self.assertEqual(self.schemes.count("u1"), 2)

    def test_update_merges_and_protects_fields(self):
        scheme = self.schemes.create("u1", SCHEME_FIELDS)
        updated = self.schemes.update(
            scheme.id,
            "u1",
            {"price": 2000000, "user_id": "u2", "created_at": None, "bogus": 1},
        )
        self.assertEqual(updated.price, 2000000)
        self.assertEqual(updated.name, "Operator Boiler")
        self.assertEqual(updated.user_id, "u1")
        self.assertEqual(updated.created_at, scheme.created_at)
        self.assertGreaterEqual(updated.updated_at, scheme.updated_at)

    def test_update_and_delete_check_ownership(self):
        scheme = self.schemes.create("u1", SCHEME_FIELDS)
        with self.assertRaises(NotFoundError):
            self.schemes.update(scheme.id, "u2", {"price": 1})
        with self.assertRaises(NotFoundError):
            self.schemes.delete(scheme.id, "u2")
        self.schemes.delete(scheme.id, "u1")
        self.assertEqual(self.schemes.count("u1"), 0)

    def test_deleting_scheme_does_not_touch_offers(self):
        scheme = self.schemes.create("u1", SCHEME_FIELDS)
        offers = offer_repository(self.db)
        offer = offers.create(
            "u1",
            {
                "scheme_id": scheme.id,
                "scheme_name": scheme.name,
                "customer_name": "PT Hijau",
                "offer_date": date(2025, 4, 1),
                "user_request": "Pelatihan operator",
                "module_ids": ["m1"],
            },
        )
        self.schemes.delete(scheme.id, "u1")

        kept = offers.get(offer.id, "u1")
        self.assertEqual(kept.scheme_name, "Operator Boiler")
        self.assertEqual(kept.offer_date, date(2025, 4, 1))

    def test_template_parameters_round_trip(self):
        templates = template_repository(self.db)
        template = templates.create(
            "u1",
            {
                "name": "Kop",
                "background_path": "backgrounds/u1/a.png",
                "parameters": [
                    {"id": "p1", "label": "Nama", "key": "customerName",
                     "position": {"x": 1.5, "y": 2.0}},
                ],
            },
        )
        loaded = templates.get(template.id, "u1")
        self.assertEqual(
            loaded.parameters,
            [TemplateParameter("p1", "Nama", Position(1.5, 2.0), "customerName")],
        )


class InMemoryRepositoryTests(RepositoryTestMixin, unittest.TestCase):
    def make_db(self):
        return InMemoryDbClient()


class SqlRepositoryTests(RepositoryTestMixin, unittest.TestCase):
    def make_db(self):
        return PostgresDbClient("sqlite+pysqlite:///:memory:")


if __name__ == "__main__":
    unittest.main()
