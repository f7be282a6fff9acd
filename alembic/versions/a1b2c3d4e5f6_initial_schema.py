"""Initial schema: tokens, market snapshots, alerts, managed wallets, AI trades.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None

AMOUNT = sa.Numeric(36, 18)


def upgrade() -> None:
    op.create_table(
        "tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("address", sa.String(42), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("symbol", sa.String(64), nullable=False),
        sa.Column("decimals", sa.Integer(), nullable=False),
        sa.Column("pair_address", sa.String(42), nullable=False),
        sa.Column("initial_liquidity", AMOUNT, nullable=False),
        sa.Column("analysis_status", sa.String(20), nullable=False),
        sa.Column("enrich_error", sa.String(512), nullable=False),
        sa.Column("enrich_attempts", sa.Integer(), nullable=False),
        sa.Column("risk_score", sa.Integer(), nullable=False),
        sa.Column("risk_level", sa.String(20), nullable=False),
        sa.Column("risk_details", sa.JSON(), nullable=True),
        sa.Column("golden_dog_score", sa.Integer(), nullable=False),
        sa.Column("is_golden_dog", sa.Boolean(), nullable=False),
        sa.Column("is_honeypot", sa.Boolean(), nullable=False),
        sa.Column("buy_tax", AMOUNT, nullable=False),
        sa.Column("sell_tax", AMOUNT, nullable=False),
        sa.Column("creator_address", sa.String(42), nullable=False),
        sa.Column("market_data", sa.JSON(), nullable=True),
        sa.Column("holder_data", sa.JSON(), nullable=True),
        sa.Column("creator_history", sa.JSON(), nullable=True),
        sa.Column("market_alerts", sa.JSON(), nullable=True),
        sa.Column("analysis_result", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("enriched_at", sa.DateTime(), nullable=True),
        sa.Column("last_market_refresh_at", sa.DateTime(), nullable=True),
        sa.Column("analyzed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("idx_tokens_status_updated", "tokens", ["analysis_status", "updated_at"])
    op.create_index("idx_tokens_created", "tokens", ["created_at"])
    op.create_index("idx_tokens_golden", "tokens", ["is_golden_dog", "analysis_status"])

    op.create_table(
        "token_market_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("token_address", sa.String(42), nullable=False),
        sa.Column("price_usd", AMOUNT, nullable=True),
        sa.Column("liquidity_usd", AMOUNT, nullable=True),
        sa.Column("volume_h1", AMOUNT, nullable=True),
        sa.Column("buys_h1", sa.Integer(), nullable=True),
        sa.Column("sells_h1", sa.Integer(), nullable=True),
        sa.Column("raw", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "idx_market_snapshots_token_time", "token_market_snapshots", ["token_address", "created_at"]
    )

    op.create_table(
        "token_alerts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("token_address", sa.String(42), nullable=False),
        sa.Column("alert_type", sa.String(40), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column("message", sa.String(255), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_token_alerts_token_time", "token_alerts", ["token_address", "created_at"])

    op.create_table(
        "managed_wallets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False, unique=True),
        sa.Column("address", sa.String(42), nullable=False),
        sa.Column("encrypted_key", sa.String(256), nullable=False),
        sa.Column("balance", AMOUNT, nullable=False),
        sa.Column("max_balance", AMOUNT, nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "wallet_configs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False, unique=True),
        sa.Column("config", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "ai_trades",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("token_address", sa.String(42), nullable=False),
        sa.Column("token_symbol", sa.String(64), nullable=False),
        sa.Column("trade_type", sa.String(4), nullable=False),
        sa.Column("amount_in", AMOUNT, nullable=False),
        sa.Column("amount_out", AMOUNT, nullable=True),
        sa.Column("tx_hash", sa.String(66), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("gas_used", sa.Integer(), nullable=True),
        sa.Column("block_number", sa.Integer(), nullable=True),
        sa.Column("golden_dog_score", sa.Integer(), nullable=False),
        sa.Column("decision_reason", sa.String(1000), nullable=False),
        sa.Column("strategy_used", sa.String(100), nullable=False),
        sa.Column("profit_loss", AMOUNT, nullable=False),
        sa.Column("error_message", sa.String(512), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_ai_trades_user_time", "ai_trades", ["user_id", "created_at"])
    op.create_index("idx_ai_trades_tx_hash", "ai_trades", ["tx_hash"])

    op.create_table(
        "ai_positions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("token_address", sa.String(42), nullable=False),
        sa.Column("token_symbol", sa.String(64), nullable=False),
        sa.Column("quantity", AMOUNT, nullable=False),
        sa.Column("cost_bnb", AMOUNT, nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "token_address", name="uq_ai_positions_user_token"),
    )


def downgrade() -> None:
    op.drop_table("ai_positions")
    op.drop_index("idx_ai_trades_tx_hash", table_name="ai_trades")
    op.drop_index("idx_ai_trades_user_time", table_name="ai_trades")
    op.drop_table("ai_trades")
    op.drop_table("wallet_configs")
    op.drop_table("managed_wallets")
    op.drop_index("idx_token_alerts_token_time", table_name="token_alerts")
    op.drop_table("token_alerts")
    op.drop_index("idx_market_snapshots_token_time", table_name="token_market_snapshots")
    op.drop_table("token_market_snapshots")
    op.drop_index("idx_tokens_golden", table_name="tokens")
    op.drop_index("idx_tokens_created", table_name="tokens")
    op.drop_index("idx_tokens_status_updated", table_name="tokens")
    op.drop_table("tokens")
