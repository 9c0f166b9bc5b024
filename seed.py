from datetime import date, timedelta

from trainwatch.auth import get_password_hash
from trainwatch.config import get_settings
from trainwatch.database import SessionLocal, engine, Base
from trainwatch.models import Alert, Employee, Training, User
from trainwatch.services.subscription import start_trial
from trainwatch.storage import Storage

# Create tables
Base.metadata.create_all(bind=engine)

db = SessionLocal()
storage = Storage(db)

# Clear existing demo data
demo = storage.get_user_by_email("demo@trainwatch.app")
if demo:
    db.query(Alert).filter(Alert.user_id == demo.id).delete()
    db.query(Training).filter(Training.user_id == demo.id).delete()
    db.query(Employee).filter(Employee.user_id == demo.id).delete()
    db.delete(demo)
    db.commit()

user = User(
    email="demo@trainwatch.app",
    hashed_password=get_password_hash("demopassword123"),
    first_name="Demo",
    last_name="Admin",
    company_name="Demo Industries",
)
start_trial(user, trial_days=get_settings().trial_days)
db.add(user)
db.commit()
db.refresh(user)

employees = [
    storage.create_employee(user.id, {"name": "Ana Souza", "email": "ana@example.com", "position": "Electrician"}),
    storage.create_employee(user.id, {"name": "Bruno Lima", "email": "bruno@example.com", "position": "Forklift Operator"}),
    storage.create_employee(user.id, {"name": "Carla Dias", "email": "carla@example.com", "position": "Safety Officer"}),
]

today = date.today()

# Expiry dates chosen so the next alert run has something to do
trainings = [
    (employees[0], "NR-10 Electrical Safety", today - timedelta(days=360), 365),  # expires in 5 days
    (employees[1], "Forklift Operation", today - timedelta(days=180), 180),       # expires today
    (employees[2], "First Aid", today - timedelta(days=30), 730),
    (employees[0], "Working at Heights", today - timedelta(days=100), 90),       # already expired
]
for employee, title, completed, validity in trainings:
    storage.create_training(user.id, {
        "employee_id": employee.id,
        "title": title,
        "completion_date": completed,
        "validity_days": validity,
    })

print("Database seeded successfully!")
print(f"  - user {user.email} (password: demopassword123)")
print(f"  - {len(employees)} employees")
print(f"  - {len(trainings)} trainings")

db.close()
