"""add expense categories favorite plates weight history

Revision ID: c7d4e2a91f36
Revises: a3c91e5d7b20
Create Date: 2026-10-19 15:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "c7d4e2a91f36"
down_revision = "a3c91e5d7b20"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "expense_categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=80), nullable=False),
        sa.Column("color", sa.String(length=20), nullable=True),
        sa.Column("icon", sa.String(length=40), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "name", name="uq_expense_categories_user_name"),
    )
    with op.batch_alter_table("expense_categories", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_expense_categories_user_id"), ["user_id"], unique=False)

    with op.batch_alter_table("expenses", schema=None) as batch_op:
        batch_op.add_column(sa.Column("category_id", sa.Integer(), nullable=True))
        batch_op.create_index(batch_op.f("ix_expenses_category_id"), ["category_id"], unique=False)
        batch_op.create_foreign_key(
            "fk_expenses_category_id_expense_categories",
            "expense_categories",
            ["category_id"],
            ["id"],
        )

    with op.batch_alter_table("meal_categories", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column(
                "updated_at",
                sa.DateTime(),
                nullable=False,
                server_default=sa.text("CURRENT_TIMESTAMP"),
            )
        )

    op.create_table(
        "favorite_meal_plates",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("plate_name", sa.String(length=120), nullable=False),
        sa.Column("plate_image", sa.String(length=500), nullable=True),
        sa.Column("meal_type", sa.String(length=40), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("favorite_meal_plates", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_favorite_meal_plates_user_id"), ["user_id"], unique=False)

    op.create_table(
        "favorite_meal_plate_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("plate_id", sa.Integer(), nullable=False),
        sa.Column("food_item_id", sa.Integer(), nullable=False),
        sa.Column("servings", sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(["food_item_id"], ["food_items.id"]),
        sa.ForeignKeyConstraint(["plate_id"], ["favorite_meal_plates.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("favorite_meal_plate_items", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_favorite_meal_plate_items_plate_id"), ["plate_id"], unique=False)

    op.create_table(
        "weight_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("weight_history", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_weight_history_day"), ["day"], unique=False)
        batch_op.create_index(batch_op.f("ix_weight_history_user_id"), ["user_id"], unique=False)


def downgrade():
    with op.batch_alter_table("weight_history", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_weight_history_user_id"))
        batch_op.drop_index(batch_op.f("ix_weight_history_day"))
    op.drop_table("weight_history")

    with op.batch_alter_table("favorite_meal_plate_items", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_favorite_meal_plate_items_plate_id"))
    op.drop_table("favorite_meal_plate_items")

    with op.batch_alter_table("favorite_meal_plates", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_favorite_meal_plates_user_id"))
    op.drop_table("favorite_meal_plates")

    with op.batch_alter_table("meal_categories", schema=None) as batch_op:
        batch_op.drop_column("updated_at")

    with op.batch_alter_table("expenses", schema=None) as batch_op:
        batch_op.drop_constraint("fk_expenses_category_id_expense_categories", type_="foreignkey")
        batch_op.drop_index(batch_op.f("ix_expenses_category_id"))
        batch_op.drop_column("category_id")

    with op.batch_alter_table("expense_categories", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_expense_categories_user_id"))
    op.drop_table("expense_categories")
