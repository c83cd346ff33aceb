"""Initial schema: messages, contacts, api_keys (SQL-only).

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op


# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


UPGRADE_SQL = """
CREATE TABLE IF NOT EXISTS messages (
    id                  VARCHAR(100) PRIMARY KEY,
    whatsapp_message_id VARCHAR(255),
    from_number         VARCHAR(20)  NOT NULL,
    to_number           VARCHAR(20)  NOT NULL,
    direction           VARCHAR(20)  NOT NULL
        CHECK (direction IN ('inbound', 'outbound')),
    message_type        VARCHAR(20)  NOT NULL
        CHECK (message_type IN ('text', 'image', 'video', 'audio', 'document',
                                'location', 'template')),
    content             TEXT         NOT NULL DEFAULT '',
    media_url           TEXT,
    media_mime_type     VARCHAR(100),
    status              VARCHAR(20)  NOT NULL
        CHECK (status IN ('queued', 'sent', 'delivered', 'read', 'failed')),
    error_code          VARCHAR(50),
    error_message       TEXT,
    metadata            JSONB        NOT NULL DEFAULT '{}'::jsonb,
    timestamp           TIMESTAMPTZ  NOT NULL,
    created_at          TIMESTAMPTZ  NOT NULL DEFAULT now(),
    updated_at          TIMESTAMPTZ  NOT NULL DEFAULT now()
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_messages_whatsapp_message_id
    ON messages (whatsapp_message_id);
CREATE INDEX IF NOT EXISTS idx_messages_from_number ON messages (from_number);
CREATE INDEX IF NOT EXISTS idx_messages_to_number ON messages (to_number);
CREATE INDEX IF NOT EXISTS idx_messages_status ON messages (status);
CREATE INDEX IF NOT EXISTS idx_messages_timestamp ON messages (timestamp DESC);

CREATE TABLE IF NOT EXISTS contacts (
    id              VARCHAR(100) PRIMARY KEY,
    phone_number    VARCHAR(20)  NOT NULL,
    name            VARCHAR(255) NOT NULL DEFAULT '',
    profile_url     TEXT,
    last_message_at TIMESTAMPTZ,
    message_count   INTEGER      NOT NULL DEFAULT 0 CHECK (message_count >= 0),
    unread_count    INTEGER      NOT NULL DEFAULT 0 CHECK (unread_count >= 0),
    metadata        JSONB        NOT NULL DEFAULT '{}'::jsonb,
    created_at      TIMESTAMPTZ  NOT NULL DEFAULT now(),
    updated_at      TIMESTAMPTZ  NOT NULL DEFAULT now()
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_contacts_phone_number ON contacts (phone_number);
CREATE INDEX IF NOT EXISTS idx_contacts_last_message_at
    ON contacts (last_message_at DESC NULLS LAST);

CREATE TABLE IF NOT EXISTS api_keys (
    id           VARCHAR(100) PRIMARY KEY,
    name         VARCHAR(255) NOT NULL,
    key_hash     VARCHAR(255) NOT NULL CHECK (key_hash <> ''),
    key_prefix   VARCHAR(20)  NOT NULL,
    permissions  JSONB        NOT NULL DEFAULT '[]'::jsonb,
    expires_at   TIMESTAMPTZ,
    last_used_at TIMESTAMPTZ,
    created_at   TIMESTAMPTZ  NOT NULL DEFAULT now(),
    updated_at   TIMESTAMPTZ  NOT NULL DEFAULT now()
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_api_keys_key_hash ON api_keys (key_hash);
CREATE INDEX IF NOT EXISTS idx_api_keys_key_prefix ON api_keys (key_prefix);
"""


def upgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(UPGRADE_SQL)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS api_keys")
    op.execute("DROP TABLE IF EXISTS contacts")
    op.execute("DROP TABLE IF EXISTS messages")
