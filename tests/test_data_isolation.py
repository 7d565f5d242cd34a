import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path
from uuid import uuid4

from werkzeug.security import generate_password_hash

from matic import create_app, db
from matic.models import (
    ChatMessage,
    Expense,
    ExpenseCategory,
    FavoriteMealPlate,
    FavoriteMealPlateItem,
    FoodItem,
    Habit,
    MealEntry,
    Task,
    User,
    WaterIntake,
    WeightEntry,
)


class DataIsolationTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.tmp_dir = tempfile.TemporaryDirectory()
        cls.db_file = Path(cls.tmp_dir.name) / f"matic-isolation-{uuid4().hex}.db"

        cls.app = create_app(
            {
                "TESTING": True,
                "SECRET_KEY": "test-secret",
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{cls.db_file.as_posix()}",
                "UPLOAD_FOLDER": str(Path(cls.tmp_dir.name) / "uploads"),
            }
        )

        with cls.app.app_context():
            db.drop_all()
            db.create_all()

            user1 = User(
                full_name="User One",
                email="user1@example.com",
                password_hash=generate_password_hash("pass12345"),
            )
            user2 = User(
                full_name="User Two",
                email="user2@example.com",
                password_hash=generate_password_hash("pass12345"),
            )
            db.session.add_all([user1, user2])
            db.session.flush()

            food = FoodItem(external_id="seed:test", name="Arroz", calories=130, protein_g=2.7, carbs_g=28, fat_g=0.3)
            db.session.add(food)
            db.session.flush()

            db.session.add(
                MealEntry(
                    user_id=user1.id,
                    food_item_id=food.id,
                    servings=1,
                    meal_type="lunch",
                    consumed_at=datetime(2026, 2, 18, 12, 0),
                )
            )
            meal_u2 = MealEntry(
                user_id=user2.id,
                food_item_id=food.id,
                servings=7,
                meal_type="lunch",
                consumed_at=datetime(2026, 2, 18, 12, 30),
            )
            db.session.add(meal_u2)

            db.session.add(Habit(user_id=user1.id, name="U1_HABIT", frequency="daily", start_date=date(2026, 1, 1)))
            habit_u2 = Habit(user_id=user2.id, name="U2_HABIT", frequency="daily", start_date=date(2026, 1, 1))
            db.session.add(habit_u2)

            db.session.add(Task(user_id=user1.id, title="U1_TASK", is_recurring=True))
            task_u2 = Task(user_id=user2.id, title="U2_TASK", is_recurring=True)
            db.session.add(task_u2)

            expense_u2 = Expense(user_id=user2.id, store_name="U2_STORE", expense_date=date(2026, 2, 18), total_amount=99)
            db.session.add_all(
                [
                    Expense(user_id=user1.id, store_name="U1_STORE", expense_date=date(2026, 2, 18), total_amount=10),
                    expense_u2,
                ]
            )

            db.session.add(WaterIntake(user_id=user2.id, day=date(2026, 2, 18), glasses=8))
            db.session.add(WeightEntry(user_id=user2.id, weight=80.5, day=date(2026, 2, 18)))
            category_u2 = ExpenseCategory(user_id=user2.id, name="U2_CATEGORY")
            plate_u2 = FavoriteMealPlate(
                user_id=user2.id,
                plate_name="U2_PLATE",
                meal_type="lunch",
                items=[FavoriteMealPlateItem(food_item_id=food.id, servings=2)],
            )
            db.session.add_all([category_u2, plate_u2])
            db.session.add_all(
                [
                    ChatMessage(user_id=user1.id, role="user", content="U1_CHAT_SECRET"),
                    ChatMessage(user_id=user2.id, role="user", content="U2_CHAT_SECRET"),
                ]
            )

            db.session.commit()
            cls.user2_meal_id = meal_u2.id
            cls.user2_habit_id = habit_u2.id
            cls.user2_task_id = task_u2.id
            cls.user2_expense_id = expense_u2.id
            cls.user2_category_id = category_u2.id
            cls.user2_plate_id = plate_u2.id

    @classmethod
    def tearDownClass(cls):
        with cls.app.app_context():
            db.session.remove()
            db.drop_all()
            db.engine.dispose()
        cls.tmp_dir.cleanup()

    def setUp(self):
        self.client = self.app.test_client()
        response = self.client.post(
            "/login",
            data={"email": "user1@example.com", "password": "pass12345"},
        )
        self.assertEqual(response.status_code, 200)

    def test_anonymous_requests_are_rejected(self):
        response = self.app.test_client().get("/habits")
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.get_json()["ok"])

    def test_user_cannot_delete_another_users_meal(self):
        response = self.client.delete(f"/meals/{self.user2_meal_id}")
        self.assertEqual(response.status_code, 404)

    def test_user_cannot_toggle_another_users_habit(self):
        response = self.client.post(f"/habits/{self.user2_habit_id}/toggle", json={"day": "2026-02-18"})
        self.assertEqual(response.status_code, 404)

    def test_user_cannot_edit_another_users_task(self):
        response = self.client.put(f"/tasks/{self.user2_task_id}", json={"title": "hijacked"})
        self.assertEqual(response.status_code, 404)

    def test_user_cannot_open_another_users_expense(self):
        response = self.client.get(f"/expenses/{self.user2_expense_id}")
        self.assertEqual(response.status_code, 404)

    def test_lists_only_show_current_users_rows(self):
        habits = self.client.get("/habits").get_json()["habits"]
        self.assertEqual([habit["name"] for habit in habits], ["U1_HABIT"])

        tasks = self.client.get("/tasks/due?day=2026-02-18").get_json()["tasks"]
        self.assertEqual([task["title"] for task in tasks], ["U1_TASK"])

        expenses = self.client.get("/expenses").get_json()["expenses"]
        self.assertEqual([expense["store_name"] for expense in expenses], ["U1_STORE"])

        meals = self.client.get("/meals?day=2026-02-18").get_json()
        self.assertEqual(len(meals["meals"]), 1)
        self.assertEqual(meals["totals"]["calories"], 130)

    def test_user_cannot_log_another_users_plate(self):
        response = self.client.post(f"/favorite-plates/{self.user2_plate_id}/log", json={})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.get("/favorite-plates").get_json()["plates"], [])

    def test_user_cannot_use_another_users_expense_category(self):
        response = self.client.post("/expenses", json={"total_amount": 3, "category_id": self.user2_category_id})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.client.delete(f"/expense-categories/{self.user2_category_id}").status_code, 404)

    def test_weight_history_is_user_scoped(self):
        self.assertEqual(self.client.get("/weight").get_json()["entries"], [])

    def test_water_is_user_scoped(self):
        response = self.client.get("/water?day=2026-02-18")
        self.assertEqual(response.get_json()["glasses"], 0)

    def test_chat_history_is_user_scoped(self):
        messages = self.client.get("/assistant/chat").get_json()["messages"]
        contents = [message["content"] for message in messages]
        self.assertIn("U1_CHAT_SECRET", contents)
        self.assertNotIn("U2_CHAT_SECRET", contents)


if __name__ == "__main__":
    unittest.main()
