import base64
import os
from datetime import date, datetime, time, timedelta
from functools import wraps
from uuid import uuid4

from flask import Blueprint, current_app, g, jsonify, request, session
from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from werkzeug.security import check_password_hash, generate_password_hash
from werkzeug.utils import secure_filename

from matic import db
from matic.ai import (
    AIServiceError,
    analyze_food_image,
    analyze_receipt_image,
    call_with_overload_retry,
    nutrition_chat,
)
from matic.food_catalog import (
    create_manual_food,
    import_foods_from_usda,
    lookup_foods,
    search_catalog,
    seed_common_foods_if_needed,
    usda_lookup,
)
from matic.models import (
    ChatMessage,
    Expense,
    ExpenseCategory,
    ExpenseItem,
    FavoriteMealPlate,
    FavoriteMealPlateItem,
    FoodItem,
    Habit,
    HabitProgress,
    MealCategory,
    MealEntry,
    NutritionGoal,
    Task,
    User,
    WaterIntake,
    WeightEntry,
)
from matic.nutrition import ValidationThresholds, daily_totals, entry_nutrition, round_half_up
from matic.recurrence import (
    DAILY,
    WEEKLY,
    Recurrence,
    apply_recurrence,
    completion_percentage,
    habit_is_due,
    habit_recurrence,
    habits_due_on,
    next_progress_state,
    progress_state,
    recurrence_from_payload,
    recurrence_to_payload,
    tasks_due_on,
    validate_task_variant,
    week_days,
)

bp = Blueprint("main", __name__)

ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "webp", "heic"}
IMAGE_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "heic": "image/heic",
}
MEAL_TYPES = {"breakfast", "lunch", "dinner", "snack"}
DEFAULT_GOALS = {"daily_calories": 2000, "daily_protein": 150.0, "daily_carbs": 250.0, "daily_fat": 67.0}
DEFAULT_MEAL_CATEGORIES = [
    {"name": "Desayuno", "color": "#f97316", "icon": "🌅"},
    {"name": "Almuerzo", "color": "#10b981", "icon": "🍽️"},
    {"name": "Merienda", "color": "#8b5cf6", "icon": "🥪"},
    {"name": "Cena", "color": "#3b82f6", "icon": "🌙"},
]
CHAT_HISTORY_LIMIT = 20


def allowed_file(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def parse_int(value):
    return int(value) if value not in (None, "") else None


def parse_float(value):
    return float(value) if value not in (None, "") else None


def parse_bool(value):
    return str(value).lower() in {"1", "true", "yes", "on"}


def normalize_text(value):
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if text.lower() in {"none", "null"}:
        return None
    return text


def normalize_email(value: str | None):
    if not value:
        return None
    return value.strip().lower()


def parse_date(value, default=None):
    if value in (None, ""):
        return default
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value}. Use YYYY-MM-DD.") from exc


def parse_datetime(value, default=None):
    if value in (None, ""):
        return default
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Invalid date/time: {value}. Use ISO 8601.") from exc


def parse_time(value):
    if value in (None, ""):
        return None
    try:
        return time.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Invalid time: {value}. Use HH:MM.") from exc


def parse_non_negative(value, label: str):
    number = parse_float(value)
    if number is not None and number < 0:
        raise ValueError(f"{label} cannot be negative.")
    return number


def request_data() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def bad_request(message: str):
    return jsonify({"ok": False, "error": message}), 400


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if g.user is None:
            return jsonify({"ok": False, "error": "Please log in first."}), 401
        return view(*args, **kwargs)

    return wrapped


@bp.before_app_request
def load_logged_in_user():
    user_id = session.get("user_id")
    g.user = db.session.get(User, user_id) if user_id else None


@bp.app_errorhandler(SQLAlchemyError)
def handle_database_error(exc):
    db.session.rollback()
    current_app.logger.exception("Database error on %s %s", request.method, request.path)
    return jsonify({"ok": False, "error": "Could not save your changes. Please try again."}), 500


@bp.app_errorhandler(HTTPException)
def handle_http_error(exc):
    return jsonify({"ok": False, "error": exc.description}), exc.code


# ---------------------------------------------------------------- serializers


def user_to_dict(user: User) -> dict:
    return {"id": user.id, "full_name": user.full_name, "email": user.email}


def goals_to_dict(goal: NutritionGoal | None) -> dict:
    if goal is None:
        return dict(DEFAULT_GOALS)
    return {
        "daily_calories": goal.daily_calories,
        "daily_protein": goal.daily_protein,
        "daily_carbs": goal.daily_carbs,
        "daily_fat": goal.daily_fat,
    }


def habit_to_dict(habit: Habit) -> dict:
    return {
        "id": habit.id,
        "name": habit.name,
        "description": habit.description,
        "category": habit.category,
        "icon": habit.icon,
        "color": habit.color,
        "priority": habit.priority,
        "target_value": habit.target_value,
        "recurrence": recurrence_to_payload(habit_recurrence(habit)),
        "frequency": habit.frequency,
        "frequency_days": habit.frequency_days,
        "start_date": habit.start_date.isoformat() if habit.start_date else None,
        "end_date": habit.end_date.isoformat() if habit.end_date else None,
        "is_active": habit.is_active,
    }


def progress_to_dict(progress: HabitProgress | None) -> dict | None:
    if progress is None:
        return None
    return {
        "habit_id": progress.habit_id,
        "day": progress.day.isoformat(),
        "completed_value": progress.completed_value,
        "is_completed": progress.is_completed,
        "notes": progress.notes,
        "state": progress_state(progress),
    }


def task_to_dict(task: Task) -> dict:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "category": task.category,
        "priority": task.priority,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "due_time": task.due_time.strftime("%H:%M") if task.due_time else None,
        "reminder_time": task.reminder_time.strftime("%H:%M") if task.reminder_time else None,
        "is_completed": task.is_completed,
        "is_recurring": task.is_recurring,
        "created_at": task.created_at.isoformat() if task.created_at else None,
    }


def food_to_dict(food: FoodItem) -> dict:
    return {
        "id": food.id,
        "external_id": food.external_id,
        "name": food.name,
        "display_name": food.display_name(),
        "brand": food.brand,
        "serving_description": food.serving_description,
        "calories": food.calories,
        "protein_g": food.protein_g,
        "carbs_g": food.carbs_g,
        "fat_g": food.fat_g,
        "source": food.source,
    }


def category_to_dict(category: MealCategory) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "color": category.color,
        "icon": category.icon,
        "is_default": category.is_default,
    }


def meal_to_dict(entry: MealEntry) -> dict:
    return {
        "id": entry.id,
        "food": food_to_dict(entry.food_item) if entry.food_item else None,
        "servings": entry.servings,
        "meal_type": entry.meal_type,
        "consumed_at": entry.consumed_at.isoformat(),
        "photo_path": entry.photo_path,
        "nutrition": entry_nutrition(entry.food_item, entry.servings) if entry.food_item else None,
    }


def expense_to_dict(expense: Expense) -> dict:
    return {
        "id": expense.id,
        "category_id": expense.category_id,
        "category_name": expense.category.name if expense.category else None,
        "store_name": expense.store_name,
        "expense_date": expense.expense_date.isoformat(),
        "total_amount": expense.total_amount,
        "payment_method": expense.payment_method,
        "receipt_image": expense.receipt_image,
        "confidence": expense.confidence,
        "items": [
            {
                "id": item.id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "total_price": item.total_price,
            }
            for item in expense.items
        ],
    }


def expense_category_to_dict(category: ExpenseCategory) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "color": category.color,
        "icon": category.icon,
    }


def plate_to_dict(plate: FavoriteMealPlate) -> dict:
    items = []
    for item in plate.items:
        items.append(
            {
                "id": item.id,
                "food": food_to_dict(item.food_item) if item.food_item else None,
                "servings": item.servings,
                "nutrition": entry_nutrition(item.food_item, item.servings) if item.food_item else None,
            }
        )
    return {
        "id": plate.id,
        "plate_name": plate.plate_name,
        "plate_image": plate.plate_image,
        "meal_type": plate.meal_type,
        "created_at": plate.created_at.isoformat(),
        "items": items,
    }


def weight_to_dict(entry: WeightEntry) -> dict:
    return {
        "id": entry.id,
        "weight": entry.weight,
        "day": entry.day.isoformat(),
        "notes": entry.notes,
    }


def message_to_dict(message: ChatMessage) -> dict:
    return {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "created_at": message.created_at.isoformat(),
    }


# ---------------------------------------------------------------- auth


@bp.post("/register")
def register():
    data = request_data()
    full_name = normalize_text(data.get("full_name"))
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""

    if not full_name:
        return bad_request("Full name is required.")
    if not email:
        return bad_request("Email is required.")
    if len(password) < 8:
        return bad_request("Password must be at least 8 characters.")
    if User.query.filter_by(email=email).first():
        return bad_request("An account with that email already exists.")

    user = User(full_name=full_name, email=email, password_hash=generate_password_hash(password))
    db.session.add(user)
    db.session.commit()

    session.clear()
    session["user_id"] = user.id
    return jsonify({"ok": True, "user": user_to_dict(user)}), 201


@bp.post("/login")
def login():
    data = request_data()
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first() if email else None
    if not user or not user.password_hash or not check_password_hash(user.password_hash, password):
        return jsonify({"ok": False, "error": "Invalid email or password."}), 401

    session.clear()
    session["user_id"] = user.id
    return jsonify({"ok": True, "user": user_to_dict(user)})


@bp.post("/logout")
@login_required
def logout():
    session.clear()
    return jsonify({"ok": True})


# ---------------------------------------------------------------- nutrition goals


@bp.get("/nutrition-goals")
@login_required
def get_nutrition_goals():
    goal = NutritionGoal.query.filter_by(user_id=g.user.id).first()
    return jsonify({"ok": True, "goals": goals_to_dict(goal)})


@bp.put("/nutrition-goals")
@login_required
def update_nutrition_goals():
    data = request_data()
    goal = NutritionGoal.query.filter_by(user_id=g.user.id).first()
    if goal is None:
        goal = NutritionGoal(user_id=g.user.id, **DEFAULT_GOALS)

    try:
        calories = parse_non_negative(data.get("daily_calories"), "Daily calories")
        protein = parse_non_negative(data.get("daily_protein"), "Daily protein")
        carbs = parse_non_negative(data.get("daily_carbs"), "Daily carbs")
        fat = parse_non_negative(data.get("daily_fat"), "Daily fat")
    except ValueError as exc:
        return bad_request(str(exc))

    if calories is not None:
        goal.daily_calories = int(round_half_up(calories))
    if protein is not None:
        goal.daily_protein = protein
    if carbs is not None:
        goal.daily_carbs = carbs
    if fat is not None:
        goal.daily_fat = fat

    db.session.add(goal)
    db.session.commit()
    return jsonify({"ok": True, "goals": goals_to_dict(goal)})


# ---------------------------------------------------------------- habits


def _recurrence_from_request(data: dict, current: Recurrence | None = None) -> Recurrence | None:
    raw = data.get("recurrence")
    if raw is not None:
        return recurrence_from_payload(raw)

    frequency = normalize_text(data.get("frequency"))
    if frequency is None:
        return current
    frequency = frequency.lower()
    if frequency in {DAILY, WEEKLY}:
        return Recurrence(frequency)
    if frequency == "custom":
        return recurrence_from_payload({"type": "weekdays", "weekdays": data.get("frequency_days") or []})
    raise ValueError("frequency must be daily, weekly or custom.")


def _apply_habit_fields(habit: Habit, data: dict) -> None:
    if "name" in data:
        name = normalize_text(data.get("name"))
        if not name:
            raise ValueError("Habit name is required.")
        habit.name = name[:180]
    if "description" in data:
        habit.description = normalize_text(data.get("description"))
    if "category" in data:
        habit.category = (normalize_text(data.get("category")) or "general")[:60]
    if "icon" in data:
        habit.icon = normalize_text(data.get("icon"))
    if "color" in data:
        habit.color = normalize_text(data.get("color"))
    if "priority" in data:
        habit.priority = parse_int(data.get("priority")) or 0
    if "target_value" in data:
        target = parse_float(data.get("target_value"))
        if target is None or target <= 0:
            raise ValueError("Target value must be greater than zero.")
        habit.target_value = target
    if "start_date" in data:
        habit.start_date = parse_date(data.get("start_date"), date.today())
    if "end_date" in data:
        habit.end_date = parse_date(data.get("end_date"))

    if habit.end_date is not None and habit.start_date is not None and habit.end_date < habit.start_date:
        raise ValueError("End date cannot be before the start date.")


def _habit_for_user(habit_id: int) -> Habit:
    return Habit.query.filter_by(id=habit_id, user_id=g.user.id).first_or_404()


@bp.get("/habits")
@login_required
def list_habits():
    habits = (
        Habit.query.filter_by(user_id=g.user.id, is_active=True)
        .order_by(Habit.priority.desc(), Habit.created_at.asc())
        .all()
    )
    return jsonify({"ok": True, "habits": [habit_to_dict(habit) for habit in habits]})


@bp.post("/habits")
@login_required
def create_habit():
    data = request_data()
    habit = Habit(user_id=g.user.id, start_date=date.today(), target_value=1, priority=0)
    try:
        if not normalize_text(data.get("name")):
            raise ValueError("Habit name is required.")
        _apply_habit_fields(habit, data)
        recurrence = _recurrence_from_request(data) or Recurrence(DAILY)
    except ValueError as exc:
        return bad_request(str(exc))

    apply_recurrence(habit, recurrence)
    db.session.add(habit)
    db.session.commit()
    return jsonify({"ok": True, "habit": habit_to_dict(habit)}), 201


@bp.put("/habits/<int:habit_id>")
@login_required
def update_habit(habit_id: int):
    habit = _habit_for_user(habit_id)
    data = request_data()
    try:
        _apply_habit_fields(habit, data)
        recurrence = _recurrence_from_request(data, current=habit_recurrence(habit))
    except ValueError as exc:
        db.session.rollback()
        return bad_request(str(exc))

    if recurrence is not None:
        apply_recurrence(habit, recurrence)
    db.session.commit()
    return jsonify({"ok": True, "habit": habit_to_dict(habit)})


@bp.delete("/habits/<int:habit_id>")
@login_required
def delete_habit(habit_id: int):
    habit = _habit_for_user(habit_id)
    habit.is_active = False
    db.session.commit()
    return jsonify({"ok": True})


@bp.get("/habits/due")
@login_required
def habits_due():
    try:
        day = parse_date(request.args.get("day"), date.today())
    except ValueError as exc:
        return bad_request(str(exc))

    habits = Habit.query.filter_by(user_id=g.user.id, is_active=True).all()
    due = habits_due_on(habits, day)
    progress_rows = HabitProgress.query.filter(
        HabitProgress.user_id == g.user.id,
        HabitProgress.day == day,
        HabitProgress.habit_id.in_([habit.id for habit in due] or [0]),
    ).all()
    progress_by_habit = {row.habit_id: row for row in progress_rows}

    return jsonify(
        {
            "ok": True,
            "day": day.isoformat(),
            "habits": [
                {**habit_to_dict(habit), "progress": progress_to_dict(progress_by_habit.get(habit.id))}
                for habit in due
            ],
        }
    )


def _progress_for(habit: Habit, day: date) -> HabitProgress | None:
    return HabitProgress.query.filter_by(habit_id=habit.id, day=day).first()


@bp.post("/habits/<int:habit_id>/toggle")
@login_required
def toggle_habit(habit_id: int):
    habit = _habit_for_user(habit_id)
    data = request_data()
    try:
        day = parse_date(data.get("day"), date.today())
    except ValueError as exc:
        return bad_request(str(exc))
    if not habit.is_active or not habit_is_due(habit, day):
        return bad_request("This habit is not scheduled for that day.")

    progress = _progress_for(habit, day)
    value, completed = next_progress_state(progress, habit.target_value)
    if progress is None:
        progress = HabitProgress(habit_id=habit.id, user_id=g.user.id, day=day)
        db.session.add(progress)
    progress.completed_value = value
    progress.is_completed = completed
    db.session.commit()
    return jsonify({"ok": True, "progress": progress_to_dict(progress)})


@bp.put("/habits/<int:habit_id>/progress")
@login_required
def upsert_habit_progress(habit_id: int):
    habit = _habit_for_user(habit_id)
    data = request_data()
    try:
        day = parse_date(data.get("day"), date.today())
        value = parse_non_negative(data.get("completed_value"), "Completed value")
    except ValueError as exc:
        return bad_request(str(exc))

    progress = _progress_for(habit, day)
    if progress is None:
        progress = HabitProgress(habit_id=habit.id, user_id=g.user.id, day=day)
        db.session.add(progress)
    progress.completed_value = value if value is not None else (progress.completed_value or 0)
    if "is_completed" in data:
        progress.is_completed = parse_bool(data.get("is_completed"))
    else:
        progress.is_completed = progress.completed_value >= habit.target_value
    if "notes" in data:
        progress.notes = normalize_text(data.get("notes"))
    db.session.commit()
    return jsonify({"ok": True, "progress": progress_to_dict(progress)})


@bp.get("/habits/<int:habit_id>/week")
@login_required
def habit_week(habit_id: int):
    habit = _habit_for_user(habit_id)
    try:
        anchor = parse_date(request.args.get("day"), date.today())
    except ValueError as exc:
        return bad_request(str(exc))

    days = week_days(anchor)
    rows = HabitProgress.query.filter(
        HabitProgress.habit_id == habit.id,
        HabitProgress.day >= days[0],
        HabitProgress.day <= days[-1],
    ).all()
    by_day = {row.day: row for row in rows}

    # End-dated habits are scored across their whole window.
    if habit.end_date is not None:
        rows = HabitProgress.query.filter_by(habit_id=habit.id).all()
    completed_days = {row.day for row in rows if row.is_completed}

    recurrence = habit_recurrence(habit)
    grid = [
        {
            "day": day.isoformat(),
            "due": habit_is_due(habit, day),
            "state": progress_state(by_day.get(day)),
        }
        for day in days
    ]
    percentage = completion_percentage(
        recurrence,
        habit.start_date,
        habit.end_date,
        completed_days,
        today=date.today(),
        days=days,
    )
    return jsonify({"ok": True, "habit_id": habit.id, "days": grid, "completion_percentage": percentage})


# ---------------------------------------------------------------- tasks


def _apply_task_fields(task: Task, data: dict) -> None:
    if "title" in data:
        title = normalize_text(data.get("title"))
        if not title:
            raise ValueError("Task title is required.")
        task.title = title[:255]
    if "description" in data:
        task.description = normalize_text(data.get("description"))
    if "category" in data:
        task.category = (normalize_text(data.get("category")) or "general")[:60]
    if "priority" in data:
        task.priority = parse_int(data.get("priority")) or 0
    if "due_date" in data:
        task.due_date = parse_date(data.get("due_date"))
    if "due_time" in data:
        task.due_time = parse_time(data.get("due_time"))
    if "reminder_time" in data:
        task.reminder_time = parse_time(data.get("reminder_time"))
    if "is_completed" in data:
        task.is_completed = parse_bool(data.get("is_completed"))
    if "is_recurring" in data:
        task.is_recurring = parse_bool(data.get("is_recurring"))

    validate_task_variant(task.due_date, bool(task.is_recurring))


@bp.get("/tasks")
@login_required
def list_tasks():
    tasks = (
        Task.query.filter_by(user_id=g.user.id)
        .order_by(Task.priority.desc(), Task.created_at.desc())
        .all()
    )
    return jsonify({"ok": True, "tasks": [task_to_dict(task) for task in tasks]})


@bp.post("/tasks")
@login_required
def create_task():
    data = request_data()
    task = Task(user_id=g.user.id, priority=0, is_completed=False, is_recurring=False)
    try:
        if not normalize_text(data.get("title")):
            raise ValueError("Task title is required.")
        _apply_task_fields(task, data)
    except ValueError as exc:
        return bad_request(str(exc))

    db.session.add(task)
    db.session.commit()
    return jsonify({"ok": True, "task": task_to_dict(task)}), 201


@bp.put("/tasks/<int:task_id>")
@login_required
def update_task(task_id: int):
    task = Task.query.filter_by(id=task_id, user_id=g.user.id).first_or_404()
    try:
        _apply_task_fields(task, request_data())
    except ValueError as exc:
        db.session.rollback()
        return bad_request(str(exc))

    db.session.commit()
    return jsonify({"ok": True, "task": task_to_dict(task)})


@bp.delete("/tasks/<int:task_id>")
@login_required
def delete_task(task_id: int):
    task = Task.query.filter_by(id=task_id, user_id=g.user.id).first_or_404()
    db.session.delete(task)
    db.session.commit()
    return jsonify({"ok": True})


@bp.get("/tasks/due")
@login_required
def tasks_due():
    try:
        day = parse_date(request.args.get("day"), date.today())
    except ValueError as exc:
        return bad_request(str(exc))

    tasks = Task.query.filter_by(user_id=g.user.id).all()
    return jsonify(
        {"ok": True, "day": day.isoformat(), "tasks": [task_to_dict(task) for task in tasks_due_on(tasks, day)]}
    )


# ---------------------------------------------------------------- foods


@bp.get("/foods/search")
@login_required
def search_foods():
    query = (request.args.get("q") or "").strip()
    if len(query) < 2:
        return jsonify({"ok": True, "foods": []})

    seed_common_foods_if_needed()
    imported = 0
    if parse_bool(request.args.get("remote")):
        imported = import_foods_from_usda(query)

    foods = search_catalog(query)
    return jsonify({"ok": True, "imported": imported, "foods": [food_to_dict(food) for food in foods]})


@bp.post("/foods/lookup")
@login_required
def lookup_food_names():
    data = request_data()
    names = data.get("foods")
    if not isinstance(names, list):
        return bad_request("foods must be a list of names.")
    return jsonify({"ok": True, "foods": lookup_foods(names)})


@bp.post("/foods/manual")
@login_required
def add_manual_food():
    data = request_data()
    try:
        food = create_manual_food(
            name=data.get("food_name") or data.get("name"),
            calories=parse_non_negative(data.get("calories_per_serving", data.get("calories")), "Calories"),
            protein_g=parse_non_negative(data.get("protein_per_serving", data.get("protein_g")), "Protein"),
            carbs_g=parse_non_negative(data.get("carbs_per_serving", data.get("carbs_g")), "Carbs"),
            fat_g=parse_non_negative(data.get("fat_per_serving", data.get("fat_g")), "Fat"),
            brand=data.get("brand_name") or data.get("brand"),
            serving_description=data.get("serving_description"),
        )
    except ValueError as exc:
        return bad_request(str(exc))

    db.session.commit()
    return jsonify({"ok": True, "food": food_to_dict(food)}), 201


# ---------------------------------------------------------------- meal categories


def ensure_default_meal_categories(user: User) -> list[MealCategory]:
    categories = MealCategory.query.filter_by(user_id=user.id).order_by(MealCategory.id.asc()).all()
    if categories:
        return categories

    for row in DEFAULT_MEAL_CATEGORIES:
        db.session.add(MealCategory(user_id=user.id, is_default=True, **row))
    db.session.commit()
    return MealCategory.query.filter_by(user_id=user.id).order_by(MealCategory.id.asc()).all()


@bp.get("/meal-categories")
@login_required
def list_meal_categories():
    categories = ensure_default_meal_categories(g.user)
    return jsonify({"ok": True, "categories": [category_to_dict(category) for category in categories]})


@bp.post("/meal-categories")
@login_required
def create_meal_category():
    data = request_data()
    name = normalize_text(data.get("name"))
    if not name:
        return bad_request("Category name is required.")
    if MealCategory.query.filter_by(user_id=g.user.id, name=name[:80]).first():
        return bad_request("A category with that name already exists.")

    category = MealCategory(
        user_id=g.user.id,
        name=name[:80],
        color=normalize_text(data.get("color")),
        icon=normalize_text(data.get("icon")),
        is_default=False,
    )
    db.session.add(category)
    db.session.commit()
    return jsonify({"ok": True, "category": category_to_dict(category)}), 201


@bp.put("/meal-categories/<int:category_id>")
@login_required
def update_meal_category(category_id: int):
    category = MealCategory.query.filter_by(id=category_id, user_id=g.user.id).first_or_404()
    data = request_data()
    if "name" in data:
        name = normalize_text(data.get("name"))
        if not name:
            return bad_request("Category name is required.")
        duplicate = MealCategory.query.filter(
            MealCategory.user_id == g.user.id,
            MealCategory.name == name[:80],
            MealCategory.id != category.id,
        ).first()
        if duplicate:
            return bad_request("A category with that name already exists.")
        category.name = name[:80]
    if "color" in data:
        category.color = normalize_text(data.get("color"))
    if "icon" in data:
        category.icon = normalize_text(data.get("icon"))

    db.session.commit()
    return jsonify({"ok": True, "category": category_to_dict(category)})


@bp.delete("/meal-categories/<int:category_id>")
@login_required
def delete_meal_category(category_id: int):
    # Meals logged under the category keep its id as their meal_type.
    category = MealCategory.query.filter_by(id=category_id, user_id=g.user.id).first_or_404()
    db.session.delete(category)
    db.session.commit()
    return jsonify({"ok": True})


# ---------------------------------------------------------------- meals


def _validate_meal_type(value) -> str:
    meal_type = normalize_text(value)
    if not meal_type:
        raise ValueError("Meal type is required.")
    if meal_type.lower() in MEAL_TYPES:
        return meal_type.lower()
    if meal_type.isdigit() and MealCategory.query.filter_by(id=int(meal_type), user_id=g.user.id).first():
        return meal_type
    raise ValueError("Meal type must be breakfast, lunch, dinner, snack or one of your categories.")


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return (start, start + timedelta(days=1))


def _entries_between(start: datetime, end: datetime) -> list[MealEntry]:
    return (
        MealEntry.query.filter(
            MealEntry.user_id == g.user.id,
            MealEntry.consumed_at >= start,
            MealEntry.consumed_at < end,
        )
        .order_by(MealEntry.consumed_at.asc())
        .all()
    )


def _save_upload(photo) -> str:
    if not allowed_file(photo.filename):
        raise ValueError("Unsupported file type. Use png, jpg, jpeg, webp, or heic.")
    safe_name = secure_filename(photo.filename)
    upload_name = f"{uuid4().hex}_{safe_name}"
    upload_dir = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(upload_dir, exist_ok=True)
    photo.save(os.path.join(upload_dir, upload_name))
    return f"uploads/{upload_name}"


def _upload_mime_type(photo) -> str:
    if photo.mimetype and photo.mimetype.startswith("image/"):
        return photo.mimetype
    return IMAGE_MIME_TYPES[photo.filename.rsplit(".", 1)[1].lower()]


def _image_from_request() -> tuple[str, str | None]:
    """Base64 image (or data URL) from a JSON body or a multipart ``photo``/``receipt`` file."""
    photo = request.files.get("photo") or request.files.get("receipt")
    if photo and photo.filename:
        photo_path = _save_upload(photo)
        with open(os.path.join(current_app.config["UPLOAD_FOLDER"], os.path.basename(photo_path)), "rb") as handle:
            encoded = base64.b64encode(handle.read()).decode("utf-8")
        return (f"data:{_upload_mime_type(photo)};base64,{encoded}", photo_path)

    data = request_data()
    image = data.get("image_base64") or data.get("imageBase64") or data.get("image")
    if not image:
        raise ValueError("No image data provided.")
    return (str(image), None)


@bp.get("/meals")
@login_required
def list_meals():
    try:
        day = parse_date(request.args.get("day"), date.today())
    except ValueError as exc:
        return bad_request(str(exc))

    entries = _entries_between(*_day_bounds(day))
    totals = daily_totals(entries).get(day.isoformat()) or {"calories": 0, "protein": 0.0, "carbs": 0.0, "fat": 0.0, "entries": 0}
    return jsonify({"ok": True, "day": day.isoformat(), "meals": [meal_to_dict(entry) for entry in entries], "totals": totals})


@bp.post("/meals")
@login_required
def create_meal():
    data = request_data()
    try:
        food_id = parse_int(data.get("food_item_id"))
        if food_id is None:
            raise ValueError("food_item_id is required.")
        servings = parse_float(data.get("servings"))
        servings = 1.0 if servings is None else servings
        if servings <= 0:
            raise ValueError("Servings must be greater than zero.")
        meal_type = _validate_meal_type(data.get("meal_type"))
        consumed_at = parse_datetime(data.get("consumed_at"), datetime.now())
    except ValueError as exc:
        return bad_request(str(exc))

    food = db.session.get(FoodItem, food_id)
    if food is None:
        return jsonify({"ok": False, "error": "Food not found."}), 404

    entry = MealEntry(
        user_id=g.user.id,
        food_item_id=food.id,
        servings=servings,
        meal_type=meal_type,
        consumed_at=consumed_at,
        photo_path=normalize_text(data.get("photo_path")),
    )
    db.session.add(entry)
    db.session.commit()
    return jsonify({"ok": True, "meal": meal_to_dict(entry)}), 201


@bp.delete("/meals/<int:meal_id>")
@login_required
def delete_meal(meal_id: int):
    entry = MealEntry.query.filter_by(id=meal_id, user_id=g.user.id).first_or_404()
    db.session.delete(entry)
    db.session.commit()
    return jsonify({"ok": True})


@bp.get("/meals/summary")
@login_required
def meals_summary():
    today = date.today()
    try:
        end = parse_date(request.args.get("end"), today)
        start = parse_date(request.args.get("start"), end - timedelta(days=6))
    except ValueError as exc:
        return bad_request(str(exc))
    if start > end:
        return bad_request("Start date must be on or before the end date.")

    goals = goals_to_dict(NutritionGoal.query.filter_by(user_id=g.user.id).first())
    totals = daily_totals(_entries_between(datetime.combine(start, time.min), _day_bounds(end)[1]))

    days = []
    cursor = start
    while cursor <= end:
        key = cursor.isoformat()
        day_totals = totals.get(key) or {"calories": 0, "protein": 0.0, "carbs": 0.0, "fat": 0.0, "entries": 0}
        days.append(
            {
                "day": key,
                **day_totals,
                "calories_remaining": goals["daily_calories"] - day_totals["calories"],
            }
        )
        cursor += timedelta(days=1)

    return jsonify({"ok": True, "goals": goals, "days": days})


@bp.post("/meals/analyze-photo")
@login_required
def analyze_meal_photo():
    try:
        image, photo_path = _image_from_request()
        lookup = usda_lookup()
        thresholds = ValidationThresholds.from_config(current_app.config)
        analysis = call_with_overload_retry(
            lambda: analyze_food_image(image, lookup=lookup, thresholds=thresholds),
            delay=current_app.config.get("AI_OVERLOAD_RETRY_SECONDS", 5.0),
        )
    except ValueError as exc:
        return bad_request(str(exc))
    except AIServiceError as exc:
        current_app.logger.warning("Food photo analysis failed: %s", exc)
        return jsonify({"ok": False, "error": str(exc)}), 502
    except Exception:
        current_app.logger.exception("Food photo analysis crashed")
        return jsonify({"ok": False, "error": "Photo analysis failed. Add the foods manually or retry."}), 500

    return jsonify({"ok": True, "analysis": analysis, "photo_path": photo_path})


@bp.post("/meals/confirm")
@login_required
def confirm_analyzed_meal():
    data = request_data()
    foods = data.get("foods")
    if not isinstance(foods, list) or not foods:
        return bad_request("Confirm at least one food.")

    try:
        meal_type = _validate_meal_type(data.get("meal_type"))
        consumed_at = parse_datetime(data.get("consumed_at"), datetime.now())
        entries = []
        for row in foods:
            if not isinstance(row, dict):
                raise ValueError("Each food must be an object.")
            food = create_manual_food(
                name=row.get("name"),
                calories=parse_non_negative(row.get("estimated_calories"), "Calories"),
                protein_g=parse_non_negative(row.get("estimated_protein"), "Protein"),
                carbs_g=parse_non_negative(row.get("estimated_carbs"), "Carbs"),
                fat_g=parse_non_negative(row.get("estimated_fat"), "Fat"),
                serving_description=row.get("estimated_portion"),
            )
            db.session.flush()
            entry = MealEntry(
                user_id=g.user.id,
                food_item_id=food.id,
                servings=1.0,
                meal_type=meal_type,
                consumed_at=consumed_at,
                photo_path=normalize_text(data.get("photo_path")),
            )
            db.session.add(entry)
            entries.append(entry)
    except ValueError as exc:
        db.session.rollback()
        return bad_request(str(exc))

    db.session.commit()
    totals = daily_totals(entries).get(consumed_at.date().isoformat())
    return jsonify({"ok": True, "meals": [meal_to_dict(entry) for entry in entries], "totals": totals}), 201


# ---------------------------------------------------------------- favorite plates


def _plate_items_from(raw_items) -> list[FavoriteMealPlateItem]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValueError("A favorite plate needs at least one food.")

    items = []
    for row in raw_items:
        if not isinstance(row, dict):
            raise ValueError("Each plate item must be an object.")
        food_id = parse_int(row.get("food_item_id", row.get("food_id")))
        if food_id is None or db.session.get(FoodItem, food_id) is None:
            raise ValueError("Each plate item needs an existing food_item_id.")
        servings = parse_float(row.get("servings"))
        servings = 1.0 if servings is None else servings
        if servings <= 0:
            raise ValueError("Servings must be greater than zero.")
        items.append(FavoriteMealPlateItem(food_item_id=food_id, servings=servings))
    return items


def _plate_for_user(plate_id: int) -> FavoriteMealPlate:
    return FavoriteMealPlate.query.filter_by(id=plate_id, user_id=g.user.id).first_or_404()


@bp.get("/favorite-plates")
@login_required
def list_favorite_plates():
    plates = (
        FavoriteMealPlate.query.filter_by(user_id=g.user.id)
        .order_by(FavoriteMealPlate.created_at.desc(), FavoriteMealPlate.id.desc())
        .all()
    )
    return jsonify({"ok": True, "plates": [plate_to_dict(plate) for plate in plates]})


@bp.post("/favorite-plates")
@login_required
def create_favorite_plate():
    data = request_data()
    try:
        plate_name = normalize_text(data.get("plate_name") or data.get("name"))
        if not plate_name:
            raise ValueError("Plate name is required.")
        meal_type = _validate_meal_type(data.get("meal_type"))
        items = _plate_items_from(data.get("items"))
    except ValueError as exc:
        return bad_request(str(exc))

    plate = FavoriteMealPlate(
        user_id=g.user.id,
        plate_name=plate_name[:120],
        plate_image=normalize_text(data.get("plate_image")),
        meal_type=meal_type,
        items=items,
    )
    db.session.add(plate)
    db.session.commit()
    return jsonify({"ok": True, "plate": plate_to_dict(plate)}), 201


@bp.delete("/favorite-plates/<int:plate_id>")
@login_required
def delete_favorite_plate(plate_id: int):
    plate = _plate_for_user(plate_id)
    db.session.delete(plate)
    db.session.commit()
    return jsonify({"ok": True})


@bp.post("/favorite-plates/<int:plate_id>/log")
@login_required
def log_favorite_plate(plate_id: int):
    plate = _plate_for_user(plate_id)
    data = request_data()
    try:
        meal_type = _validate_meal_type(data.get("meal_type") or plate.meal_type)
        consumed_at = parse_datetime(data.get("consumed_at"), datetime.now())
    except ValueError as exc:
        return bad_request(str(exc))

    entries = []
    for item in plate.items:
        entry = MealEntry(
            user_id=g.user.id,
            food_item_id=item.food_item_id,
            servings=item.servings,
            meal_type=meal_type,
            consumed_at=consumed_at,
            photo_path=plate.plate_image,
        )
        db.session.add(entry)
        entries.append(entry)

    db.session.commit()
    totals = daily_totals(entries).get(consumed_at.date().isoformat())
    return jsonify({"ok": True, "meals": [meal_to_dict(entry) for entry in entries], "totals": totals}), 201


# ---------------------------------------------------------------- expenses


def _expense_items_from(raw_items) -> list[ExpenseItem]:
    if raw_items in (None, ""):
        return []
    if not isinstance(raw_items, list):
        raise ValueError("Items must be a list.")

    items = []
    for row in raw_items:
        if not isinstance(row, dict):
            raise ValueError("Each item must be an object.")
        product_name = normalize_text(row.get("product_name"))
        if not product_name:
            raise ValueError("Each item needs a product name.")
        items.append(
            ExpenseItem(
                product_name=product_name[:255],
                quantity=(normalize_text(row.get("quantity")) or "")[:60] or None,
                unit_price=parse_non_negative(row.get("unit_price"), "Unit price"),
                total_price=parse_non_negative(row.get("total_price"), "Total price"),
            )
        )
    return items


def _expense_category_id(value) -> int | None:
    if value in (None, ""):
        return None
    category_id = parse_int(value)
    if ExpenseCategory.query.filter_by(id=category_id, user_id=g.user.id).first() is None:
        raise ValueError("Expense category not found.")
    return category_id


def _apply_expense_fields(expense: Expense, data: dict) -> None:
    if "category_id" in data:
        expense.category_id = _expense_category_id(data.get("category_id"))
    if "store_name" in data:
        expense.store_name = (normalize_text(data.get("store_name")) or "")[:255] or None
    if "expense_date" in data or "date" in data:
        expense.expense_date = parse_date(data.get("expense_date", data.get("date")), date.today())
    if "payment_method" in data:
        expense.payment_method = (normalize_text(data.get("payment_method")) or "")[:60] or None
    if "receipt_image" in data:
        expense.receipt_image = normalize_text(data.get("receipt_image"))
    if "confidence" in data:
        confidence = parse_float(data.get("confidence"))
        expense.confidence = None if confidence is None else max(0.0, min(1.0, confidence))
    if "items" in data:
        expense.items = _expense_items_from(data.get("items"))
    if "total_amount" in data:
        total = parse_non_negative(data.get("total_amount"), "Total amount")
        expense.total_amount = total if total is not None else 0.0
    elif expense.total_amount is None:
        expense.total_amount = round(sum(item.total_price or 0 for item in expense.items), 2)


def _expense_for_user(expense_id: int) -> Expense:
    return Expense.query.filter_by(id=expense_id, user_id=g.user.id).first_or_404()


@bp.get("/expenses")
@login_required
def list_expenses():
    try:
        start = parse_date(request.args.get("start"))
        end = parse_date(request.args.get("end"))
    except ValueError as exc:
        return bad_request(str(exc))

    query = Expense.query.filter_by(user_id=g.user.id)
    if start:
        query = query.filter(Expense.expense_date >= start)
    if end:
        query = query.filter(Expense.expense_date <= end)
    expenses = query.order_by(Expense.expense_date.desc(), Expense.created_at.desc()).all()
    return jsonify(
        {
            "ok": True,
            "expenses": [expense_to_dict(expense) for expense in expenses],
            "total": round(sum(expense.total_amount or 0 for expense in expenses), 2),
        }
    )


@bp.post("/expenses")
@login_required
def create_expense():
    data = request_data()
    expense = Expense(user_id=g.user.id, expense_date=date.today(), total_amount=None)
    try:
        _apply_expense_fields(expense, data)
    except ValueError as exc:
        return bad_request(str(exc))

    db.session.add(expense)
    db.session.commit()
    return jsonify({"ok": True, "expense": expense_to_dict(expense)}), 201


@bp.get("/expenses/<int:expense_id>")
@login_required
def get_expense(expense_id: int):
    return jsonify({"ok": True, "expense": expense_to_dict(_expense_for_user(expense_id))})


@bp.put("/expenses/<int:expense_id>")
@login_required
def update_expense(expense_id: int):
    expense = _expense_for_user(expense_id)
    try:
        _apply_expense_fields(expense, request_data())
    except ValueError as exc:
        db.session.rollback()
        return bad_request(str(exc))

    db.session.commit()
    return jsonify({"ok": True, "expense": expense_to_dict(expense)})


@bp.delete("/expenses/<int:expense_id>")
@login_required
def delete_expense(expense_id: int):
    expense = _expense_for_user(expense_id)
    db.session.delete(expense)
    db.session.commit()
    return jsonify({"ok": True})


@bp.post("/expenses/analyze-receipt")
@login_required
def analyze_receipt():
    try:
        image, receipt_path = _image_from_request()
        analysis = call_with_overload_retry(
            lambda: analyze_receipt_image(image),
            delay=current_app.config.get("AI_OVERLOAD_RETRY_SECONDS", 5.0),
        )
    except ValueError as exc:
        return bad_request(str(exc))
    except AIServiceError as exc:
        current_app.logger.warning("Receipt analysis failed: %s", exc)
        return jsonify({"ok": False, "error": str(exc)}), 502
    except Exception:
        current_app.logger.exception("Receipt analysis crashed")
        return jsonify({"ok": False, "error": "Receipt analysis failed. Enter the expense manually or retry."}), 500

    return jsonify({"ok": True, "analysis": analysis, "receipt_image": receipt_path})


# ---------------------------------------------------------------- expense categories


def _expense_category_for_user(category_id: int) -> ExpenseCategory:
    return ExpenseCategory.query.filter_by(id=category_id, user_id=g.user.id).first_or_404()


def _apply_expense_category_fields(category: ExpenseCategory, data: dict) -> None:
    if "name" in data or category.name is None:
        name = normalize_text(data.get("name"))
        if not name:
            raise ValueError("Category name is required.")
        query = ExpenseCategory.query.filter(
            ExpenseCategory.user_id == g.user.id,
            ExpenseCategory.name == name[:80],
        )
        if category.id is not None:
            query = query.filter(ExpenseCategory.id != category.id)
        if query.first():
            raise ValueError("A category with that name already exists.")
        category.name = name[:80]
    if "color" in data:
        category.color = (normalize_text(data.get("color")) or "")[:20] or None
    if "icon" in data:
        category.icon = (normalize_text(data.get("icon")) or "")[:40] or None


@bp.get("/expense-categories")
@login_required
def list_expense_categories():
    categories = ExpenseCategory.query.filter_by(user_id=g.user.id).order_by(ExpenseCategory.name.asc()).all()
    return jsonify({"ok": True, "categories": [expense_category_to_dict(category) for category in categories]})


@bp.post("/expense-categories")
@login_required
def create_expense_category():
    category = ExpenseCategory(user_id=g.user.id)
    try:
        _apply_expense_category_fields(category, request_data())
    except ValueError as exc:
        return bad_request(str(exc))

    db.session.add(category)
    db.session.commit()
    return jsonify({"ok": True, "category": expense_category_to_dict(category)}), 201


@bp.put("/expense-categories/<int:category_id>")
@login_required
def update_expense_category(category_id: int):
    category = _expense_category_for_user(category_id)
    try:
        _apply_expense_category_fields(category, request_data())
    except ValueError as exc:
        db.session.rollback()
        return bad_request(str(exc))

    db.session.commit()
    return jsonify({"ok": True, "category": expense_category_to_dict(category)})


@bp.delete("/expense-categories/<int:category_id>")
@login_required
def delete_expense_category(category_id: int):
    category = _expense_category_for_user(category_id)
    if Expense.query.filter_by(category_id=category.id).first():
        return bad_request("Cannot delete a category that still has expenses.")

    db.session.delete(category)
    db.session.commit()
    return jsonify({"ok": True})


# ---------------------------------------------------------------- water


@bp.get("/water")
@login_required
def get_water():
    try:
        day = parse_date(request.args.get("day"), date.today())
    except ValueError as exc:
        return bad_request(str(exc))

    intake = WaterIntake.query.filter_by(user_id=g.user.id, day=day).first()
    return jsonify({"ok": True, "day": day.isoformat(), "glasses": intake.glasses if intake else 0})


@bp.put("/water")
@login_required
def update_water():
    data = request_data()
    try:
        day = parse_date(data.get("day"), date.today())
        glasses = parse_int(data.get("glasses"))
        delta = parse_int(data.get("delta"))
    except ValueError as exc:
        return bad_request(str(exc) or "Glasses must be a whole number.")
    if glasses is None and delta is None:
        return bad_request("Send glasses or delta.")

    intake = WaterIntake.query.filter_by(user_id=g.user.id, day=day).first()
    if intake is None:
        intake = WaterIntake(user_id=g.user.id, day=day, glasses=0)
        db.session.add(intake)
    new_total = glasses if glasses is not None else (intake.glasses or 0) + delta
    intake.glasses = max(0, new_total)
    db.session.commit()
    return jsonify({"ok": True, "day": day.isoformat(), "glasses": intake.glasses})


# ---------------------------------------------------------------- weight


@bp.get("/weight")
@login_required
def list_weight():
    entries = (
        WeightEntry.query.filter_by(user_id=g.user.id)
        .order_by(WeightEntry.day.desc(), WeightEntry.id.desc())
        .all()
    )
    return jsonify({"ok": True, "entries": [weight_to_dict(entry) for entry in entries]})


@bp.post("/weight")
@login_required
def add_weight():
    data = request_data()
    try:
        weight = parse_float(data.get("weight"))
        if weight is None or weight <= 0:
            raise ValueError("Weight must be greater than zero.")
        day = parse_date(data.get("day", data.get("date")), date.today())
    except ValueError as exc:
        return bad_request(str(exc))

    entry = WeightEntry(user_id=g.user.id, weight=weight, day=day, notes=normalize_text(data.get("notes")))
    db.session.add(entry)
    db.session.commit()
    return jsonify({"ok": True, "entry": weight_to_dict(entry)}), 201


@bp.delete("/weight/<int:entry_id>")
@login_required
def delete_weight(entry_id: int):
    entry = WeightEntry.query.filter_by(id=entry_id, user_id=g.user.id).first_or_404()
    db.session.delete(entry)
    db.session.commit()
    return jsonify({"ok": True})


# ---------------------------------------------------------------- assistant


def _assistant_context(user: User) -> dict:
    today_key = date.today().isoformat()
    totals = daily_totals(_entries_between(*_day_bounds(date.today()))).get(today_key)
    return {
        "user_name": user.full_name or user.email,
        "goals": goals_to_dict(NutritionGoal.query.filter_by(user_id=user.id).first()),
        "today": totals or {"calories": 0, "protein": 0.0, "carbs": 0.0, "fat": 0.0},
    }


def _recent_messages(user_id: int, limit: int = CHAT_HISTORY_LIMIT) -> list[ChatMessage]:
    rows = (
        ChatMessage.query.filter_by(user_id=user_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))


@bp.get("/assistant/chat")
@login_required
def chat_history():
    return jsonify({"ok": True, "messages": [message_to_dict(row) for row in _recent_messages(g.user.id, 100)]})


@bp.delete("/assistant/chat")
@login_required
def clear_chat_history():
    ChatMessage.query.filter_by(user_id=g.user.id).delete()
    db.session.commit()
    return jsonify({"ok": True})


@bp.post("/assistant/chat")
@login_required
def assistant_chat():
    data = request_data()
    text = normalize_text(data.get("message"))
    if not text:
        return bad_request("Message text is required.")

    history = [{"role": row.role, "content": row.content} for row in _recent_messages(g.user.id)]
    context = _assistant_context(g.user)
    try:
        reply = call_with_overload_retry(
            lambda: nutrition_chat(text, history=history, context=context),
            delay=current_app.config.get("AI_OVERLOAD_RETRY_SECONDS", 5.0),
        )
    except ValueError as exc:
        return bad_request(str(exc))
    except AIServiceError as exc:
        current_app.logger.warning("Assistant chat failed: %s", exc)
        return jsonify({"ok": False, "error": str(exc)}), 502
    except Exception:
        current_app.logger.exception("Assistant chat crashed")
        return jsonify({"ok": False, "error": "The assistant is unavailable right now. Try again shortly."}), 500

    user_message = ChatMessage(user_id=g.user.id, role="user", content=text)
    db.session.add(user_message)
    db.session.flush()
    assistant_message = ChatMessage(user_id=g.user.id, role="assistant", content=reply)
    db.session.add(assistant_message)
    db.session.commit()
    return jsonify({"ok": True, "reply": reply, "messages": [message_to_dict(user_message), message_to_dict(assistant_message)]})


# ---------------------------------------------------------------- export


EXPORT_TYPES = {"meals", "habits", "expenses"}
UNCATEGORIZED_LABEL = "Sin categoría"


def parse_month(value) -> tuple[date, date]:
    """First and last day of a ``YYYY-MM`` month; the current month when empty."""
    if value in (None, ""):
        first = date.today().replace(day=1)
    else:
        try:
            first = date.fromisoformat(f"{str(value).strip()[:7]}-01")
        except ValueError as exc:
            raise ValueError(f"Invalid month: {value}. Use YYYY-MM.") from exc
    next_month = (first + timedelta(days=32)).replace(day=1)
    return (first, next_month - timedelta(days=1))


def _export_meals(start: date, end: date) -> dict:
    entries = _entries_between(datetime.combine(start, time.min), _day_bounds(end)[1])
    daily_summary = [{"day": day, **totals} for day, totals in daily_totals(entries).items()]
    return {"meals": [meal_to_dict(entry) for entry in entries], "daily_summary": daily_summary}


def _export_habits(start: date, end: date) -> dict:
    habits = Habit.query.filter_by(user_id=g.user.id).order_by(Habit.created_at.desc()).all()
    names = {habit.id: habit.name for habit in habits}
    progress = (
        HabitProgress.query.filter(
            HabitProgress.user_id == g.user.id,
            HabitProgress.day >= start,
            HabitProgress.day <= end,
        )
        .order_by(HabitProgress.day.asc())
        .all()
    )
    tasks = (
        Task.query.filter(Task.user_id == g.user.id)
        .filter(
            or_(
                and_(Task.due_date >= start, Task.due_date <= end),
                and_(
                    Task.created_at >= datetime.combine(start, time.min),
                    Task.created_at < _day_bounds(end)[1],
                ),
            )
        )
        .order_by(Task.created_at.desc())
        .all()
    )
    return {
        "habits": [habit_to_dict(habit) for habit in habits],
        "progress": [
            {**progress_to_dict(row), "habit_name": names.get(row.habit_id, "Hábito eliminado")} for row in progress
        ],
        "tasks": [task_to_dict(task) for task in tasks],
    }


def _export_expenses(start: date, end: date) -> dict:
    expenses = (
        Expense.query.filter(
            Expense.user_id == g.user.id,
            Expense.expense_date >= start,
            Expense.expense_date <= end,
        )
        .order_by(Expense.expense_date.desc(), Expense.id.desc())
        .all()
    )

    stats = {}
    items = []
    for expense in expenses:
        name = expense.category.name if expense.category else UNCATEGORIZED_LABEL
        row = stats.setdefault(name, {"category_name": name, "total_amount": 0.0, "expense_count": 0})
        row["total_amount"] += expense.total_amount or 0
        row["expense_count"] += 1
        for item in expense.items:
            items.append(
                {
                    "product_name": item.product_name,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "total_price": item.total_price,
                    "expense_id": expense.id,
                    "expense_date": expense.expense_date.isoformat(),
                    "store_name": expense.store_name,
                }
            )

    category_stats = []
    for row in stats.values():
        row["total_amount"] = round(row["total_amount"], 2)
        row["average_amount"] = round(row["total_amount"] / row["expense_count"], 2)
        category_stats.append(row)

    return {
        "expenses": [expense_to_dict(expense) for expense in expenses],
        "items": items,
        "category_stats": category_stats,
    }


@bp.get("/export")
@login_required
def export_user_data():
    data_type = (request.args.get("type") or "").strip().lower()
    if data_type == "goals":
        data_type = "habits"
    if data_type not in EXPORT_TYPES:
        return bad_request("Export type must be meals, habits or expenses.")
    try:
        start, end = parse_month(request.args.get("month"))
    except ValueError as exc:
        return bad_request(str(exc))

    exporters = {"meals": _export_meals, "habits": _export_habits, "expenses": _export_expenses}
    payload = exporters[data_type](start, end)
    current_app.logger.info("User %s exported %s for %s", g.user.id, data_type, start.strftime("%Y-%m"))
    return jsonify({"ok": True, "type": data_type, "month": start.strftime("%Y-%m"), **payload})
