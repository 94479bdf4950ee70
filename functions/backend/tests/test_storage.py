import unittest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from backend.storage import (
    CosStorageClient,
    InMemoryStorageClient,
    is_own_background,
    new_background_path,
)


class BackgroundPathTests(unittest.TestCase):
    def test_new_paths_live_in_the_user_prefix(self):
        path = new_background_path("u1", "webp")
        self.assertTrue(path.startswith("backgrounds/u1/"))
        self.assertTrue(path.endswith(".webp"))
        self.assertTrue(is_own_background(path, "u1"))

    def test_foreign_and_escaping_paths_are_rejected(self):
        for path in (
            "backgrounds/u2/a.png",
            "backgrounds/u1/../u2/a.png",
            "backgrounds/u1/",
            "/backgrounds/u1/a.png",
            "backgrounds/u1//a.png",
            "papers/u1/a.png",
            "",
        ):
            with self.subTest(path=path):
                self.assertFalse(is_own_background(path, "u1"))


class InMemoryStorageClientTests(unittest.TestCase):
    def test_upload_and_read_back(self):
        storage = InMemoryStorageClient()
        storage.upload_bytes("backgrounds/u1/a.png", b"png", "image/png")
        self.assertEqual(storage.get_bytes("backgrounds/u1/a.png"), b"png")
        with self.assertRaises(FileNotFoundError):
            storage.get_bytes("backgrounds/u1/b.png")


class CosStorageClientTests(unittest.TestCase):
    def setUp(self):
        patcher = patch("backend.storage.boto3.client")
        self.boto_client = patcher.start().return_value
        self.addCleanup(patcher.stop)
        self.storage = CosStorageClient(
            bucket="greenskill-1250000000",
            region="ap-jakarta",
            endpoint="https://cos.ap-jakarta.myqcloud.com",
            access_key_id="id",
            secret_access_key="secret",
        )

    def test_presign_put_signs_content_type(self):
        self.boto_client.generate_presigned_url.return_value = "https://signed"
        url = self.storage.presign_put("backgrounds/u1/a.png", 600, "image/png")
        self.assertEqual(url, "https://signed")
        self.boto_client.generate_presigned_url.assert_called_once_with(
            ClientMethod="put_object",
            Params={
                "Bucket": "greenskill-1250000000",
                "Key": "backgrounds/u1/a.png",
                "ContentType": "image/png",
            },
            ExpiresIn=600,
        )

    def test_missing_object_raises_file_not_found(self):
        self.boto_client.get_object.side_effect = ClientError(
            {"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject"
        )
        with self.assertRaises(FileNotFoundError):
            self.storage.get_bytes("backgrounds/u1/a.png")

    def test_other_errors_propagate(self):
        self.boto_client.get_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "no"}}, "GetObject"
        )
        with self.assertRaises(ClientError):
            self.storage.get_bytes("backgrounds/u1/a.png")

    def test_get_bytes_reads_body(self):
        body = MagicMock()
        body.read.return_value = b"img"
        self.boto_client.get_object.return_value = {"Body": body}
        self.assertEqual(self.storage.get_bytes("backgrounds/u1/a.png"), b"img")


if __name__ == "__main__":
    unittest.main()
