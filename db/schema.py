from __future__ import annotations

import sqlite3


def bootstrap(conn: sqlite3.Connection) -> None:
    """Create both contact shapes, audit/release tables, indexes and views (idempotent)."""
    cur = conn.cursor()

    # Registered identities
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS persons (\n"
            "  id TEXT PRIMARY KEY,\n"
            "  email TEXT NOT NULL UNIQUE,\n"
            "  display_name TEXT,\n"
            "  account_status TEXT NOT NULL DEFAULT 'ACTIVE' CHECK (account_status IN ('ACTIVE', 'DECEASED')),\n"
            "  deceased_at TEXT,\n"
            "  created_at TEXT NOT NULL DEFAULT (datetime('now'))\n"
            ")"
        )
    )

    # Legacy flat shape: one row per owner+contact
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS contacts (\n"
            "  id TEXT PRIMARY KEY,\n"
            "  owner_person_id TEXT NOT NULL,\n"
            "  email TEXT,\n"
            "  full_name TEXT NOT NULL,\n"
            "  phone TEXT,\n"
            "  relationship TEXT,\n"
            "  contact_type TEXT NOT NULL DEFAULT 'regular',\n"
            "  role TEXT,\n"
            "  is_primary INTEGER NOT NULL DEFAULT 0,\n"
            "  invitation_status TEXT DEFAULT 'pending',\n"
            "  confirmed_at TEXT,\n"
            "  created_at TEXT NOT NULL DEFAULT (datetime('now'))\n"
            ")"
        )
    )
    # Backfill columns if table existed before identity linking was introduced
    try:
        cur.execute("ALTER TABLE contacts ADD COLUMN linked_person_id TEXT;")
    except sqlite3.OperationalError:
        pass
    cur.execute("CREATE INDEX IF NOT EXISTS idx_contacts_owner ON contacts(owner_person_id);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_contacts_email ON contacts(lower(email));")

    # Normalized shape: contact per email + owner relationship
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS contacts_new (\n"
            "  id TEXT PRIMARY KEY,\n"
            "  email TEXT NOT NULL UNIQUE,\n"
            "  linked_person_id TEXT,\n"
            "  created_at TEXT NOT NULL DEFAULT (datetime('now')),\n"
            "  updated_at TEXT NOT NULL DEFAULT (datetime('now'))\n"
            ")"
        )
    )
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS user_trusted_contacts (\n"
            "  id TEXT PRIMARY KEY,\n"
            "  owner_person_id TEXT NOT NULL,\n"
            "  contact_id TEXT NOT NULL,\n"
            "  full_name TEXT NOT NULL,\n"
            "  phone TEXT,\n"
            "  relationship TEXT,\n"
            "  contact_type TEXT NOT NULL DEFAULT 'regular',\n"
            "  role TEXT,\n"
            "  is_primary INTEGER NOT NULL DEFAULT 0,\n"
            "  invitation_status TEXT NOT NULL DEFAULT 'pending',\n"
            "  confirmed_at TEXT,\n"
            "  created_at TEXT NOT NULL DEFAULT (datetime('now')),\n"
            "  updated_at TEXT NOT NULL DEFAULT (datetime('now')),\n"
            "  UNIQUE(owner_person_id, contact_id),\n"
            "  CHECK ((contact_type = 'trusted' AND role IS NOT NULL) OR (contact_type = 'regular' AND role IS NULL)),\n"
            "  CHECK (is_primary = 0 OR contact_type = 'trusted'),\n"
            "  CHECK (contact_type != 'trusted' OR trim(COALESCE(phone, '')) != ''),\n"
            "  FOREIGN KEY(contact_id) REFERENCES contacts_new(id) ON DELETE CASCADE\n"
            ")"
        )
    )
    # Owner-editable details moved off the shared per-email row
    for column in ("full_name TEXT", "phone TEXT"):
        try:
            cur.execute(f"ALTER TABLE user_trusted_contacts ADD COLUMN {column};")
        except sqlite3.OperationalError:
            pass
    cur.execute("CREATE INDEX IF NOT EXISTS idx_utc_owner ON user_trusted_contacts(owner_person_id);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_utc_contact ON user_trusted_contacts(contact_id);")

    # Derived reverse index: who trusts this email
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS trust_index (\n"
            "  contact_email TEXT NOT NULL,\n"
            "  owner_person_id TEXT NOT NULL,\n"
            "  role TEXT NOT NULL,\n"
            "  is_primary INTEGER NOT NULL DEFAULT 0,\n"
            "  invitation_status TEXT NOT NULL,\n"
            "  source TEXT NOT NULL,\n"
            "  refreshed_at TEXT NOT NULL DEFAULT (datetime('now')),\n"
            "  PRIMARY KEY (contact_email, owner_person_id, role)\n"
            ")"
        )
    )

    # Append-only audit; one effective confirmation per target
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS deceased_confirmations (\n"
            "  id TEXT PRIMARY KEY,\n"
            "  target_person_id TEXT NOT NULL UNIQUE,\n"
            "  confirmed_by_person_id TEXT NOT NULL,\n"
            "  notes TEXT,\n"
            "  verification_method TEXT NOT NULL,\n"
            "  confirmed_at TEXT NOT NULL,\n"
            "  FOREIGN KEY(target_person_id) REFERENCES persons(id)\n"
            ")"
        )
    )

    # Content catalog (storage itself lives elsewhere)
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS content_items (\n"
            "  id TEXT PRIMARY KEY,\n"
            "  owner_person_id TEXT NOT NULL,\n"
            "  title TEXT NOT NULL,\n"
            "  is_private INTEGER NOT NULL DEFAULT 1,\n"
            "  created_at TEXT NOT NULL DEFAULT (datetime('now')),\n"
            "  FOREIGN KEY(owner_person_id) REFERENCES persons(id)\n"
            ")"
        )
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_content_owner ON content_items(owner_person_id);")
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS content_assignments (\n"
            "  content_id TEXT NOT NULL,\n"
            "  recipient_email TEXT NOT NULL,\n"
            "  created_at TEXT NOT NULL DEFAULT (datetime('now')),\n"
            "  PRIMARY KEY (content_id, recipient_email),\n"
            "  FOREIGN KEY(content_id) REFERENCES content_items(id) ON DELETE CASCADE\n"
            ")"
        )
    )

    # Release history
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS release_shares (\n"
            "  id TEXT PRIMARY KEY,\n"
            "  content_id TEXT NOT NULL,\n"
            "  owner_person_id TEXT NOT NULL,\n"
            "  recipient_identity TEXT NOT NULL,\n"
            "  recipient_person_id TEXT,\n"
            "  released_at TEXT NOT NULL,\n"
            "  viewed_at TEXT,\n"
            "  is_legacy_release INTEGER NOT NULL DEFAULT 1,\n"
            "  UNIQUE(content_id, recipient_identity),\n"
            "  FOREIGN KEY(content_id) REFERENCES content_items(id)\n"
            ")"
        )
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_release_shares_recipient ON release_shares(recipient_identity);")
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS release_failures (\n"
            "  id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            "  owner_person_id TEXT NOT NULL,\n"
            "  content_id TEXT NOT NULL,\n"
            "  recipient_identity TEXT NOT NULL,\n"
            "  error TEXT,\n"
            "  attempted_at TEXT NOT NULL DEFAULT (datetime('now'))\n"
            ")"
        )
    )

    # View for merged reads across both contact shapes
    cur.execute("DROP VIEW IF EXISTS v_contact_records;")
    cur.execute(
        (
            "CREATE VIEW v_contact_records AS\n"
            "SELECT\n"
            "  utc.id AS id,\n"
            "  utc.owner_person_id,\n"
            "  lower(trim(c.email)) AS target_email,\n"
            "  utc.full_name,\n"
            "  utc.phone,\n"
            "  utc.relationship,\n"
            "  utc.contact_type,\n"
            "  utc.role,\n"
            "  utc.is_primary,\n"
            "  c.linked_person_id,\n"
            "  utc.invitation_status,\n"
            "  utc.confirmed_at,\n"
            "  utc.created_at,\n"
            "  'normalized' AS source\n"
            "FROM user_trusted_contacts utc JOIN contacts_new c ON c.id = utc.contact_id\n"
            "UNION ALL\n"
            "SELECT\n"
            "  l.id,\n"
            "  l.owner_person_id,\n"
            "  lower(trim(l.email)),\n"
            "  l.full_name,\n"
            "  l.phone,\n"
            "  l.relationship,\n"
            "  l.contact_type,\n"
            "  l.role,\n"
            "  l.is_primary,\n"
            "  l.linked_person_id,\n"
            "  COALESCE(l.invitation_status, 'pending'),\n"
            "  l.confirmed_at,\n"
            "  l.created_at,\n"
            "  'legacy'\n"
            "FROM contacts l;"
        )
    )

    conn.commit()
