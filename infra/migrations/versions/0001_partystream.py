from alembic import op
import sqlalchemy as sa

revision = "0001_partystream"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(16), nullable=False, server_default="host"),
        sa.Column("first_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("stripe_customer_id", sa.String(64), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("role IN ('host', 'dj', 'admin')", name="ck_users_role"),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "dj_profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("stage_name", sa.String(128), nullable=False),
        sa.Column("hourly_rate", sa.Float, nullable=False),
        sa.Column("genres", sa.JSON, nullable=False),
        sa.Column("bio", sa.Text, nullable=False, server_default=""),
        sa.Column("experience", sa.Text, nullable=False, server_default=""),
        sa.Column("equipment", sa.Text, nullable=False, server_default=""),
        sa.Column("video_links", sa.JSON, nullable=False),
        sa.Column("languages", sa.JSON, nullable=False),
        *_timestamps(),
        sa.CheckConstraint("hourly_rate > 0", name="ck_dj_profiles_hourly_rate"),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("host_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "dj_profile_id",
            sa.String(36),
            sa.ForeignKey("dj_profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_hours", sa.Float, nullable=False),
        sa.Column("total_amount", sa.Float, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text, nullable=False, server_default=""),
        *_timestamps(),
        sa.CheckConstraint("end_time > start_time", name="ck_bookings_time_order"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="ck_bookings_status",
        ),
    )
    op.create_index("ix_bookings_host_id", "bookings", ["host_id"])
    op.create_index("ix_bookings_dj_profile_id", "bookings", ["dj_profile_id"])
    op.create_index(
        "ix_bookings_dj_window", "bookings", ["dj_profile_id", "status", "start_time", "end_time"]
    )

    op.create_table(
        "streams",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "booking_id", sa.String(36), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("dj_profile_id", sa.String(36), sa.ForeignKey("dj_profiles.id"), nullable=False),
        sa.Column("host_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False, server_default=""),
        sa.Column("status", sa.String(16), nullable=False, server_default="created"),
        sa.Column("channel_arn", sa.String(255), nullable=True),
        sa.Column("stream_key_arn", sa.String(255), nullable=True),
        sa.Column("ingest_endpoint", sa.String(255), nullable=True),
        sa.Column("playback_url", sa.String(512), nullable=True),
        sa.Column("viewers_peak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_streams_booking_id", "streams", ["booking_id"])
    op.create_index(
        "uq_streams_open_booking",
        "streams",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('created', 'active')"),
        sqlite_where=sa.text("status IN ('created', 'active')"),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "booking_id", sa.String(36), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("host_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Float, nullable=False),
        sa.Column("service_fee", sa.Float, nullable=False),
        sa.Column("total_amount", sa.Float, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("payment_intent_id", sa.String(128), nullable=False, unique=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("refund_id", sa.String(128), nullable=True),
        sa.Column("refunded_amount", sa.Float, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"])
    op.create_index(
        "uq_payments_succeeded_booking",
        "payments",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text("status = 'succeeded'"),
        sqlite_where=sa.text("status = 'succeeded'"),
    )

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "booking_id", sa.String(36), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_chat_messages_booking_created", "chat_messages", ["booking_id", "created_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer, sa.Identity(always=False), primary_key=True),
        sa.Column("entity", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("actor_id", sa.String(36), nullable=True),
        sa.Column("from_status", sa.String(16), nullable=True),
        sa.Column("to_status", sa.String(16), nullable=True),
        sa.Column("details", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])


def downgrade():
    op.drop_table("audit_logs")
    op.drop_table("chat_messages")
    op.drop_index("uq_payments_succeeded_booking", table_name="payments")
    op.drop_table("payments")
    op.drop_index("uq_streams_open_booking", table_name="streams")
    op.drop_table("streams")
    op.drop_table("bookings")
    op.drop_table("dj_profiles")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
