import os
from pathlib import Path

TEST_DB = os.getenv("TEST_DATABASE_PATH", "/tmp/partystream_tests.db")
os.environ.setdefault("DATABASE_URL", f"sqlite+pysqlite:///{TEST_DB}")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")

from libs.db import db  # noqa: E402

if db.DB_URL != os.environ["DATABASE_URL"]:
    db.rebind(os.environ["DATABASE_URL"])

if os.environ["DATABASE_URL"].startswith("sqlite"):
    Path(TEST_DB).unlink(missing_ok=True)
    Path(TEST_DB).touch()

from infra import AuditBase, PartyStreamBase  # noqa: E402

PartyStreamBase.metadata.drop_all(bind=db.engine)
PartyStreamBase.metadata.create_all(bind=db.engine)
AuditBase.metadata.drop_all(bind=db.engine)
AuditBase.metadata.create_all(bind=db.engine)
