from datetime import date, datetime

from matic import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=True)
    password_hash = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    nutrition_goal = db.relationship("NutritionGoal", backref="user", uselist=False, lazy=True)
    habits = db.relationship("Habit", backref="user", lazy=True)
    tasks = db.relationship("Task", backref="user", lazy=True)
    meal_entries = db.relationship("MealEntry", backref="user", lazy=True)
    meal_categories = db.relationship("MealCategory", backref="user", lazy=True)
    expenses = db.relationship("Expense", backref="user", lazy=True)
    expense_categories = db.relationship("ExpenseCategory", backref="user", lazy=True)
    favorite_plates = db.relationship("FavoriteMealPlate", backref="user", lazy=True)
    weight_entries = db.relationship("WeightEntry", backref="user", lazy=True)
    chat_messages = db.relationship("ChatMessage", backref="user", lazy=True)


class NutritionGoal(db.Model):
    __tablename__ = "nutrition_goals"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False)
    daily_calories = db.Column(db.Integer, nullable=False, default=2000)
    daily_protein = db.Column(db.Float, nullable=False, default=150)
    daily_carbs = db.Column(db.Float, nullable=False, default=250)
    daily_fat = db.Column(db.Float, nullable=False, default=67)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


class Habit(db.Model):
    __tablename__ = "habits"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(180), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(60), nullable=False, default="general")
    icon = db.Column(db.String(40), nullable=True)
    color = db.Column(db.String(20), nullable=True)
    priority = db.Column(db.Integer, nullable=False, default=0, index=True)
    target_value = db.Column(db.Float, nullable=False, default=1)

    # Legacy recurrence columns kept in sync with frequency_data by matic.recurrence.
    frequency = db.Column(db.String(20), nullable=False, default="daily")
    frequency_days = db.Column(db.JSON, nullable=True)  # ["monday", "wednesday"]
    frequency_data = db.Column(db.Text, nullable=True)  # JSON blob, see recurrence_to_columns

    start_date = db.Column(db.Date, nullable=False, default=date.today, index=True)
    end_date = db.Column(db.Date, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    progress = db.relationship("HabitProgress", backref="habit", lazy=True)


class HabitProgress(db.Model):
    __tablename__ = "habit_progress"

    id = db.Column(db.Integer, primary_key=True)
    habit_id = db.Column(db.Integer, db.ForeignKey("habits.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    day = db.Column(db.Date, nullable=False, index=True)
    completed_value = db.Column(db.Float, nullable=False, default=0)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (db.UniqueConstraint("habit_id", "day", name="uq_habit_progress_habit_day"),)


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(60), nullable=False, default="general")
    priority = db.Column(db.Integer, nullable=False, default=0)
    due_date = db.Column(db.Date, nullable=True, index=True)
    due_time = db.Column(db.Time, nullable=True)
    reminder_time = db.Column(db.Time, nullable=True)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    is_recurring = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


class FoodItem(db.Model):
    __tablename__ = "food_items"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(64), unique=True, nullable=False)
    name = db.Column(db.String(255), index=True, nullable=False)
    brand = db.Column(db.String(255), nullable=True)
    serving_description = db.Column(db.String(120), nullable=True)

    calories = db.Column(db.Float, nullable=True)
    protein_g = db.Column(db.Float, nullable=True)
    carbs_g = db.Column(db.Float, nullable=True)
    fat_g = db.Column(db.Float, nullable=True)

    source = db.Column(db.String(20), nullable=False, default="manual")
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def display_name(self):
        if self.brand:
            return f"{self.name} ({self.brand})"
        return self.name


class MealCategory(db.Model):
    __tablename__ = "meal_categories"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(80), nullable=False)
    color = db.Column(db.String(20), nullable=True)
    icon = db.Column(db.String(40), nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (db.UniqueConstraint("user_id", "name", name="uq_meal_categories_user_name"),)


class MealEntry(db.Model):
    __tablename__ = "meal_entries"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    food_item_id = db.Column(db.Integer, db.ForeignKey("food_items.id"), nullable=False)
    servings = db.Column(db.Float, nullable=False, default=1)
    meal_type = db.Column(db.String(40), nullable=False)  # breakfast/lunch/dinner/snack or category id
    consumed_at = db.Column(db.DateTime, index=True, nullable=False, default=datetime.utcnow)
    photo_path = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    food_item = db.relationship("FoodItem", backref="meal_entries", lazy=True)


class Expense(db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("expense_categories.id"), nullable=True, index=True)
    store_name = db.Column(db.String(255), nullable=True)
    expense_date = db.Column(db.Date, nullable=False, default=date.today, index=True)
    total_amount = db.Column(db.Float, nullable=False, default=0)
    payment_method = db.Column(db.String(60), nullable=True)
    receipt_image = db.Column(db.String(500), nullable=True)
    confidence = db.Column(db.Float, nullable=True)  # 0-1, from the receipt analyzer
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    items = db.relationship(
        "ExpenseItem",
        backref="expense",
        lazy=True,
        cascade="all, delete-orphan",
    )
    category = db.relationship("ExpenseCategory", backref="expenses", lazy=True)


class ExpenseItem(db.Model):
    __tablename__ = "expense_items"

    id = db.Column(db.Integer, primary_key=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.String(60), nullable=True)  # "2x", "500g"
    unit_price = db.Column(db.Float, nullable=True)
    total_price = db.Column(db.Float, nullable=True)


class WaterIntake(db.Model):
    __tablename__ = "water_intake"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    day = db.Column(db.Date, nullable=False, index=True)
    glasses = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (db.UniqueConstraint("user_id", "day", name="uq_water_intake_user_day"),)


class ChatMessage(db.Model):
    __tablename__ = "chat_messages"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False)  # user | assistant
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)


class ExpenseCategory(db.Model):
    __tablename__ = "expense_categories"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(80), nullable=False)
    color = db.Column(db.String(20), nullable=True)
    icon = db.Column(db.String(40), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (db.UniqueConstraint("user_id", "name", name="uq_expense_categories_user_name"),)


class FavoriteMealPlate(db.Model):
    __tablename__ = "favorite_meal_plates"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    plate_name = db.Column(db.String(120), nullable=False)
    plate_image = db.Column(db.String(500), nullable=True)
    meal_type = db.Column(db.String(40), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    items = db.relationship(
        "FavoriteMealPlateItem",
        backref="plate",
        lazy=True,
        cascade="all, delete-orphan",
    )


class FavoriteMealPlateItem(db.Model):
    __tablename__ = "favorite_meal_plate_items"

    id = db.Column(db.Integer, primary_key=True)
    plate_id = db.Column(db.Integer, db.ForeignKey("favorite_meal_plates.id"), nullable=False, index=True)
    food_item_id = db.Column(db.Integer, db.ForeignKey("food_items.id"), nullable=False)
    servings = db.Column(db.Float, nullable=False, default=1)

    food_item = db.relationship("FoodItem", lazy=True)


class WeightEntry(db.Model):
    __tablename__ = "weight_history"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    weight = db.Column(db.Float, nullable=False)  # kg
    day = db.Column(db.Date, nullable=False, default=date.today, index=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )
