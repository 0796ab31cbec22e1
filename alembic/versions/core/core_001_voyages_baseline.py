"""voyages baseline schema

Revision ID: core_001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Users, tour packages, itineraries with their days, activities, collaborators
and version history, bookings with the yearly code sequence, the audit log
and notifications.
"""

from __future__ import annotations

from alembic import op

# revision identifiers, used by Alembic.
revision = "core_001"
down_revision = None
branch_labels = ("core",)
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            first_name TEXT,
            last_name TEXT,
            email TEXT NOT NULL UNIQUE,
            role TEXT NOT NULL DEFAULT 'USER' CHECK (role IN ('USER', 'ADMIN')),
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS tour_packages (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            title TEXT NOT NULL,
            destination TEXT NOT NULL,
            price NUMERIC(12, 2) NOT NULL DEFAULT 0,
            duration_days INTEGER,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS tour_package_days (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            tour_package_id UUID NOT NULL REFERENCES tour_packages (id) ON DELETE CASCADE,
            day_number INTEGER NOT NULL CHECK (day_number >= 1),
            title TEXT,
            UNIQUE (tour_package_id, day_number)
        )
        """
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS tour_package_activities (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            tour_package_day_id UUID NOT NULL
                REFERENCES tour_package_days (id) ON DELETE CASCADE,
            time TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            location TEXT,
            icon TEXT,
            sort_order INTEGER NOT NULL DEFAULT 0
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS itineraries (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users (id),
            title TEXT,
            destination TEXT NOT NULL,
            start_date DATE,
            end_date DATE,
            travelers INTEGER NOT NULL DEFAULT 1 CHECK (travelers >= 1),
            estimated_cost NUMERIC(12, 2),
            travel_pace TEXT,
            preferences TEXT[] NOT NULL DEFAULT '{}',
            type TEXT NOT NULL DEFAULT 'CUSTOMIZED'
                CHECK (type IN ('STANDARD', 'CUSTOMIZED', 'REQUESTED', 'SMART_TRIP')),
            status TEXT NOT NULL DEFAULT 'DRAFT'
                CHECK (status IN ('DRAFT', 'PENDING', 'APPROVED', 'REJECTED', 'ARCHIVED')),
            tour_type TEXT NOT NULL DEFAULT 'PRIVATE' CHECK (tour_type IN ('JOINER', 'PRIVATE')),
            requested_status TEXT CHECK (requested_status IN ('SENT', 'CONFIRMED')),
            sent_status TEXT,
            sent_at TIMESTAMPTZ,
            confirmed_at TIMESTAMPTZ,
            rejection_reason TEXT,
            rejection_resolution TEXT,
            is_resolved BOOLEAN NOT NULL DEFAULT false,
            version INTEGER NOT NULL DEFAULT 1 CHECK (version >= 1),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CHECK (end_date IS NULL OR start_date IS NULL OR end_date >= start_date)
        )
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_itineraries_user_id ON itineraries (user_id)")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS itinerary_days (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            itinerary_id UUID NOT NULL REFERENCES itineraries (id) ON DELETE CASCADE,
            day_number INTEGER NOT NULL CHECK (day_number >= 1),
            title TEXT,
            date DATE
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_itinerary_days_itinerary ON itinerary_days (itinerary_id)"
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS activities (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            itinerary_day_id UUID NOT NULL REFERENCES itinerary_days (id) ON DELETE CASCADE,
            time TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            location TEXT,
            icon TEXT,
            sort_order INTEGER NOT NULL DEFAULT 0 CHECK (sort_order >= 0)
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_activities_day ON activities (itinerary_day_id, sort_order)"
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS itinerary_collaborators (
            itinerary_id UUID NOT NULL REFERENCES itineraries (id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES users (id) ON DELETE CASCADE,
            role TEXT NOT NULL DEFAULT 'COLLABORATOR',
            invited_by UUID REFERENCES users (id) ON DELETE SET NULL,
            added_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (itinerary_id, user_id)
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS itinerary_versions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            itinerary_id UUID NOT NULL REFERENCES itineraries (id) ON DELETE CASCADE,
            version INTEGER NOT NULL CHECK (version >= 1),
            snapshot JSONB NOT NULL,
            created_by UUID REFERENCES users (id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (itinerary_id, version)
        )
        """
    )

    # History rows are immutable. Deletes are only let through when they come
    # from the cascade of an itinerary delete (trigger depth > 1).
    op.execute(
        """
        CREATE OR REPLACE FUNCTION itinerary_versions_append_only()
        RETURNS TRIGGER
        LANGUAGE plpgsql
        AS $$
        BEGIN
            IF TG_OP = 'DELETE' AND pg_trigger_depth() > 1 THEN
                RETURN OLD;
            END IF;
            RAISE EXCEPTION 'itinerary_versions is append-only (% rejected)', TG_OP
                USING ERRCODE = 'restrict_violation';
        END;
        $$
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_itinerary_versions_append_only
        BEFORE UPDATE OR DELETE ON itinerary_versions
        FOR EACH ROW EXECUTE FUNCTION itinerary_versions_append_only()
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS bookings (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            booking_code TEXT NOT NULL UNIQUE,
            user_id UUID NOT NULL REFERENCES users (id),
            itinerary_id UUID NOT NULL REFERENCES itineraries (id) ON DELETE RESTRICT,
            destination TEXT NOT NULL,
            start_date DATE,
            end_date DATE,
            travelers INTEGER NOT NULL DEFAULT 1 CHECK (travelers >= 1),
            total_price NUMERIC(12, 2) NOT NULL DEFAULT 0,
            user_budget NUMERIC(12, 2),
            type TEXT NOT NULL CHECK (type IN ('STANDARD', 'CUSTOMIZED', 'REQUESTED')),
            status TEXT NOT NULL DEFAULT 'DRAFT' CHECK (
                status IN ('DRAFT', 'PENDING', 'CONFIRMED', 'REJECTED', 'COMPLETED', 'CANCELLED')
            ),
            tour_type TEXT NOT NULL DEFAULT 'PRIVATE' CHECK (tour_type IN ('JOINER', 'PRIVATE')),
            payment_status TEXT NOT NULL DEFAULT 'PENDING',
            customer_name TEXT,
            customer_email TEXT,
            customer_mobile TEXT,
            rejection_reason TEXT,
            rejection_resolution TEXT,
            is_resolved BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_bookings_user_id ON bookings (user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_bookings_itinerary_id ON bookings (itinerary_id)")
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_bookings_status_created "
        "ON bookings (status, created_at DESC)"
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS booking_sequences (
            year INTEGER PRIMARY KEY,
            current_number INTEGER NOT NULL DEFAULT 0 CHECK (current_number >= 0),
            last_issued_code TEXT,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS activity_logs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            actor_user_id UUID,
            action TEXT NOT NULL,
            entity_type TEXT NOT NULL,
            entity_id TEXT NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
            message TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_activity_logs_entity "
        "ON activity_logs (entity_type, entity_id, created_at DESC)"
    )
    op.execute(
        """
        CREATE OR REPLACE FUNCTION activity_logs_append_only()
        RETURNS TRIGGER
        LANGUAGE plpgsql
        AS $$
        BEGIN
            RAISE EXCEPTION 'activity_logs is append-only (% rejected)', TG_OP
                USING ERRCODE = 'restrict_violation';
        END;
        $$
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_activity_logs_append_only
        BEFORE UPDATE OR DELETE ON activity_logs
        FOR EACH ROW EXECUTE FUNCTION activity_logs_append_only()
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS notifications (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users (id) ON DELETE CASCADE,
            type TEXT NOT NULL,
            title TEXT,
            message TEXT NOT NULL,
            data JSONB NOT NULL DEFAULT '{}'::jsonb,
            is_read BOOLEAN NOT NULL DEFAULT false,
            read_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_notifications_user_unread "
        "ON notifications (user_id, is_read, created_at DESC)"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notifications")
    op.execute("DROP TRIGGER IF EXISTS trg_activity_logs_append_only ON activity_logs")
    op.execute("DROP FUNCTION IF EXISTS activity_logs_append_only()")
    op.execute("DROP TABLE IF EXISTS activity_logs")
    op.execute("DROP TABLE IF EXISTS booking_sequences")
    op.execute("DROP TABLE IF EXISTS bookings")
    op.execute("DROP TRIGGER IF EXISTS trg_itinerary_versions_append_only ON itinerary_versions")
    op.execute("DROP FUNCTION IF EXISTS itinerary_versions_append_only()")
    op.execute("DROP TABLE IF EXISTS itinerary_versions")
    op.execute("DROP TABLE IF EXISTS itinerary_collaborators")
    op.execute("DROP TABLE IF EXISTS activities")
    op.execute("DROP TABLE IF EXISTS itinerary_days")
    op.execute("DROP TABLE IF EXISTS itineraries")
    op.execute("DROP TABLE IF EXISTS tour_package_activities")
    op.execute("DROP TABLE IF EXISTS tour_package_days")
    op.execute("DROP TABLE IF EXISTS tour_packages")
    op.execute("DROP TABLE IF EXISTS users")
