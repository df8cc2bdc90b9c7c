"""Gamification core tables.

Creates user_profiles, point_transactions, achievements, user_achievements
and quests.

Revision ID: 001_gamification_core
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_gamification_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- User Profiles (id issued by the auth provider) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_profiles (
            id UUID PRIMARY KEY,
            username VARCHAR(20) NOT NULL,
            avatar_url TEXT,
            trainer_level INTEGER NOT NULL DEFAULT 1,
            civic_coins INTEGER NOT NULL DEFAULT 0,
            trust_score INTEGER NOT NULL DEFAULT 0,
            rank VARCHAR(32) NOT NULL DEFAULT 'Novice Trainer',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_profiles_username_key UNIQUE (username),
            CONSTRAINT user_profiles_civic_coins_non_negative CHECK (civic_coins >= 0),
            CONSTRAINT user_profiles_trainer_level_positive CHECK (trainer_level >= 1),
            CONSTRAINT user_profiles_rank_valid CHECK (rank IN (
                'Novice Trainer', 'Issue Scout', 'Community Guardian',
                'District Champion', 'Elite PokeRanger'
            ))
        )
    """)

    # --- CivicCoin Ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS point_transactions (
            id UUID PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES user_profiles(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            reason VARCHAR(32) NOT NULL,
            description VARCHAR(256),
            idempotency_key VARCHAR(256),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT point_transactions_user_key_unique UNIQUE (user_id, idempotency_key),
            CONSTRAINT point_transactions_amount_non_zero CHECK (amount <> 0),
            CONSTRAINT point_transactions_reason_valid CHECK (reason IN (
                'issue_report', 'issue_verification', 'quest_completion',
                'badge_earned', 'rank_up', 'other'
            ))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_point_transactions_user_created
        ON point_transactions(user_id, created_at)
    """)

    # --- Achievement Catalog ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id VARCHAR(64) PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            icon VARCHAR(64) NOT NULL,
            category VARCHAR(32) NOT NULL,
            required_coins INTEGER NOT NULL,
            sort_order INTEGER NOT NULL DEFAULT 0
        )
    """)

    # --- User Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            user_id UUID NOT NULL REFERENCES user_profiles(id) ON DELETE CASCADE,
            achievement_id VARCHAR(64) NOT NULL REFERENCES achievements(id),
            unlocked BOOLEAN NOT NULL DEFAULT false,
            unlocked_at TIMESTAMPTZ,
            progress INTEGER NOT NULL DEFAULT 0,
            required INTEGER NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (user_id, achievement_id),
            CONSTRAINT user_achievements_unlocked_at_set CHECK (NOT unlocked OR unlocked_at IS NOT NULL)
        )
    """)

    # --- Quests ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS quests (
            id UUID PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES user_profiles(id) ON DELETE CASCADE,
            title VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            type VARCHAR(32) NOT NULL,
            reward_amount INTEGER NOT NULL,
            progress INTEGER NOT NULL DEFAULT 0,
            required INTEGER NOT NULL,
            status VARCHAR(32) NOT NULL DEFAULT 'active',
            quest_day DATE NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            completed_at TIMESTAMPTZ,
            CONSTRAINT quests_user_day_type_key UNIQUE (user_id, quest_day, type),
            CONSTRAINT quests_required_positive CHECK (required > 0),
            CONSTRAINT quests_reward_non_negative CHECK (reward_amount >= 0),
            CONSTRAINT quests_progress_clamped CHECK (progress >= 0 AND progress <= required),
            CONSTRAINT quests_status_valid CHECK (status IN ('active', 'completed', 'expired')),
            CONSTRAINT quests_type_valid CHECK (type IN (
                'verify_issues', 'report_issues', 'help_found_items',
                'visit_locations', 'daily_login'
            ))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_quests_user_status
        ON quests(user_id, status)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_quests_active_expiry
        ON quests(expires_at)
        WHERE status = 'active'
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS quests CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS point_transactions CASCADE")
    op.execute("DROP TABLE IF EXISTS user_profiles CASCADE")
