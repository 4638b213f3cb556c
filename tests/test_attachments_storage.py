import pytest

from ats_verify.services.attachments import AttachmentStorage, safe_filename


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("scan.pdf", "scan.pdf"),
        ("../../etc/passwd", "passwd"),
        ("фото паспорта.jpg", "jpg"),
        ("my report (1).pdf", "my_report_1_.pdf"),
        ("", "attachment"),
    ],
)
def test_safe_filename(raw, expected):
    assert safe_filename(raw) == expected


@pytest.mark.asyncio
async def test_save_writes_under_ticket_directory(tmp_path):
    storage = AttachmentStorage(tmp_path, "/uploads/")

    url = await storage.save("ticket-1", "scan.pdf", b"%PDF")

    assert url.startswith("/uploads/ticket-1/")
    stored_name = url.rsplit("/", 1)[1]
    assert stored_name.endswith("_scan.pdf")
    assert (tmp_path / "ticket-1" / stored_name).read_bytes() == b"%PDF"
