"""create matic tables

Revision ID: a3c91e5d7b20
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a3c91e5d7b20"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "nutrition_goals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("daily_calories", sa.Integer(), nullable=False),
        sa.Column("daily_protein", sa.Float(), nullable=False),
        sa.Column("daily_carbs", sa.Float(), nullable=False),
        sa.Column("daily_fat", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )

    op.create_table(
        "habits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=180), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=60), nullable=False),
        sa.Column("icon", sa.String(length=40), nullable=True),
        sa.Column("color", sa.String(length=20), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("target_value", sa.Float(), nullable=False),
        sa.Column("frequency", sa.String(length=20), nullable=False),
        sa.Column("frequency_days", sa.JSON(), nullable=True),
        sa.Column("frequency_data", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("habits", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_habits_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_habits_priority"), ["priority"], unique=False)
        batch_op.create_index(batch_op.f("ix_habits_start_date"), ["start_date"], unique=False)
        batch_op.create_index(batch_op.f("ix_habits_is_active"), ["is_active"], unique=False)

    op.create_table(
        "habit_progress",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("habit_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("completed_value", sa.Float(), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["habit_id"], ["habits.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("habit_id", "day", name="uq_habit_progress_habit_day"),
    )
    with op.batch_alter_table("habit_progress", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_habit_progress_habit_id"), ["habit_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_habit_progress_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_habit_progress_day"), ["day"], unique=False)

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=60), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("due_time", sa.Time(), nullable=True),
        sa.Column("reminder_time", sa.Time(), nullable=True),
        sa.Column("is_completed", sa.Boolean(), nullable=False),
        sa.Column("is_recurring", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("tasks", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_tasks_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_tasks_due_date"), ["due_date"], unique=False)

    op.create_table(
        "food_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("external_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("brand", sa.String(length=255), nullable=True),
        sa.Column("serving_description", sa.String(length=120), nullable=True),
        sa.Column("calories", sa.Float(), nullable=True),
        sa.Column("protein_g", sa.Float(), nullable=True),
        sa.Column("carbs_g", sa.Float(), nullable=True),
        sa.Column("fat_g", sa.Float(), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("external_id"),
    )
    with op.batch_alter_table("food_items", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_food_items_name"), ["name"], unique=False)

    op.create_table(
        "meal_categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=80), nullable=False),
        sa.Column("color", sa.String(length=20), nullable=True),
        sa.Column("icon", sa.String(length=40), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "name", name="uq_meal_categories_user_name"),
    )
    with op.batch_alter_table("meal_categories", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_meal_categories_user_id"), ["user_id"], unique=False)

    op.create_table(
        "meal_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("food_item_id", sa.Integer(), nullable=False),
        sa.Column("servings", sa.Float(), nullable=False),
        sa.Column("meal_type", sa.String(length=40), nullable=False),
        sa.Column("consumed_at", sa.DateTime(), nullable=False),
        sa.Column("photo_path", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["food_item_id"], ["food_items.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("meal_entries", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_meal_entries_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_meal_entries_consumed_at"), ["consumed_at"], unique=False)

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("store_name", sa.String(length=255), nullable=True),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("total_amount", sa.Float(), nullable=False),
        sa.Column("payment_method", sa.String(length=60), nullable=True),
        sa.Column("receipt_image", sa.String(length=500), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("expenses", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_expenses_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_expenses_expense_date"), ["expense_date"], unique=False)

    op.create_table(
        "expense_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("expense_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.String(length=60), nullable=True),
        sa.Column("unit_price", sa.Float(), nullable=True),
        sa.Column("total_price", sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(["expense_id"], ["expenses.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("expense_items", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_expense_items_expense_id"), ["expense_id"], unique=False)

    op.create_table(
        "water_intake",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("glasses", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "day", name="uq_water_intake_user_day"),
    )
    with op.batch_alter_table("water_intake", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_water_intake_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_water_intake_day"), ["day"], unique=False)

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("chat_messages", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_chat_messages_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_chat_messages_created_at"), ["created_at"], unique=False)


def downgrade():
    with op.batch_alter_table("chat_messages", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_chat_messages_created_at"))
        batch_op.drop_index(batch_op.f("ix_chat_messages_user_id"))
    op.drop_table("chat_messages")

    with op.batch_alter_table("water_intake", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_water_intake_day"))
        batch_op.drop_index(batch_op.f("ix_water_intake_user_id"))
    op.drop_table("water_intake")

    with op.batch_alter_table("expense_items", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_expense_items_expense_id"))
    op.drop_table("expense_items")

    with op.batch_alter_table("expenses", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_expenses_expense_date"))
        batch_op.drop_index(batch_op.f("ix_expenses_user_id"))
    op.drop_table("expenses")

    with op.batch_alter_table("meal_entries", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_meal_entries_consumed_at"))
        batch_op.drop_index(batch_op.f("ix_meal_entries_user_id"))
    op.drop_table("meal_entries")

    with op.batch_alter_table("meal_categories", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_meal_categories_user_id"))
    op.drop_table("meal_categories")

    with op.batch_alter_table("food_items", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_food_items_name"))
    op.drop_table("food_items")

    with op.batch_alter_table("tasks", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_tasks_due_date"))
        batch_op.drop_index(batch_op.f("ix_tasks_user_id"))
    op.drop_table("tasks")

    with op.batch_alter_table("habit_progress", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_habit_progress_day"))
        batch_op.drop_index(batch_op.f("ix_habit_progress_user_id"))
        batch_op.drop_index(batch_op.f("ix_habit_progress_habit_id"))
    op.drop_table("habit_progress")

    with op.batch_alter_table("habits", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_habits_is_active"))
        batch_op.drop_index(batch_op.f("ix_habits_start_date"))
        batch_op.drop_index(batch_op.f("ix_habits_priority"))
        batch_op.drop_index(batch_op.f("ix_habits_user_id"))
    op.drop_table("habits")

    op.drop_table("nutrition_goals")
    op.drop_table("users")
