"""
Demo data

`flask --app app seed-demo` wipes the database and loads a small team
with categories, tasks in every state and a few comments. Dates are
relative to now so the board always has upcoming and overdue work.
"""

from datetime import timedelta
import logging

import click
from flask.cli import with_appcontext

from extensions import bcrypt
from models import db, User, Category, Task, Comment, Notification, Role, utcnow

logger = logging.getLogger(__name__)

DEMO_PASSWORD = 'password123'

USERS = [
    ('admin@taskflow.com', 'Sarah Mitchell', Role.ADMIN),
    ('dev@test.com', 'Alex Thompson', Role.USER),
    ('designer@taskflow.com', 'Emma Rodriguez', Role.USER),
    ('pm@taskflow.com', 'Michael Chen', Role.ADMIN),
    ('james@taskflow.com', 'James Chen', Role.USER),
]

CATEGORIES = [
    ('Development', '#3B82F6'),
    ('Design', '#EC4899'),
    ('Marketing', '#F59E0B'),
    ('Bug Fix', '#EF4444'),
    ('Documentation', '#8B5CF6'),
    ('Research', '#06B6D4'),
    ('Infrastructure', '#10B981'),
]

# (title, description, status, priority, due in days, creator, assignee, category)
TASKS = [
    ('Implement user authentication flow',
     'Add login, registration, and password reset functionality with JWT tokens',
     'TODO', 'HIGH', 3, 'admin@taskflow.com', 'dev@test.com', 'Development'),
    ('Design new dashboard layout',
     'Create wireframes and mockups for the updated dashboard with better UX',
     'TODO', 'MEDIUM', 5, 'admin@taskflow.com', 'designer@taskflow.com', 'Design'),
    ('Write API documentation',
     'Document all REST endpoints with request/response examples',
     'TODO', 'LOW', 10, 'dev@test.com', 'james@taskflow.com', 'Documentation'),
    ('Research competitor features',
     'Analyze top 5 competitors and identify potential features to implement',
     'TODO', 'MEDIUM', None, 'designer@taskflow.com', 'designer@taskflow.com', 'Research'),
    ('Set up CI/CD pipeline',
     'Configure automated testing and deployment',
     'TODO', 'HIGH', -1, 'james@taskflow.com', 'james@taskflow.com', 'Infrastructure'),
    ('Build task filtering system',
     'Implement filters by status, priority, assignee, and date range',
     'IN_PROGRESS', 'HIGH', 2, 'admin@taskflow.com', 'dev@test.com', 'Development'),
    ('Create email templates',
     'Design responsive email templates for notifications and newsletters',
     'IN_PROGRESS', 'MEDIUM', 4, 'designer@taskflow.com', 'designer@taskflow.com', 'Design'),
    ('Fix login page mobile layout',
     'The login form breaks on screens smaller than 375px width',
     'IN_PROGRESS', 'HIGH', -2, 'dev@test.com', 'dev@test.com', 'Bug Fix'),
    ('Prepare Q4 marketing campaign',
     'Plan social media strategy and content calendar for product launch',
     'IN_PROGRESS', 'MEDIUM', 6, 'admin@taskflow.com', 'james@taskflow.com', 'Marketing'),
    ('Set up project repository',
     'Initialize Git repository with proper .gitignore and README',
     'DONE', 'HIGH', -5, 'admin@taskflow.com', 'admin@taskflow.com', 'Infrastructure'),
    ('Database schema design',
     'Create ERD and define all tables with relationships',
     'DONE', 'HIGH', -7, 'admin@taskflow.com', 'james@taskflow.com', 'Development'),
    ('Fix pagination bug',
     'Pagination shows incorrect total count after filtering',
     'DONE', 'MEDIUM', -2, 'dev@test.com', 'dev@test.com', 'Bug Fix'),
]

# (task index, author, content, hours ago)
COMMENTS = [
    (0, 'dev@test.com', "I've started working on the JWT implementation.", 5),
    (0, 'admin@taskflow.com', 'Great! Make sure to use refresh tokens for better security.', 4),
    (1, 'designer@taskflow.com', "I've uploaded the initial wireframes.", 24),
    (5, 'dev@test.com', 'The filter component is almost done.', 2),
    (7, 'dev@test.com', 'Found the issue, it was a CSS flexbox problem.', 8),
    (10, 'admin@taskflow.com', 'All relationships look good. Ready for implementation.', 168),
]


def days_from_now(days, now):
    """5 PM UTC `days` from today"""
    return (now + timedelta(days=days)).replace(hour=17, minute=0, second=0, microsecond=0)


def clear_data():
    # Children first so foreign keys hold
    for model in (Notification, Comment, Task, Category, User):
        db.session.query(model).delete()


def seed_demo_data(password=DEMO_PASSWORD):
    """Reset every table and insert the demo set; returns counts"""
    now = utcnow()
    clear_data()

    password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    users = {}
    for email, name, role in USERS:
        users[email] = User(email=email, name=name, role=role.value, password_hash=password_hash)
        db.session.add(users[email])

    categories = {}
    for name, color in CATEGORIES:
        categories[name] = Category(name=name, color=color)
        db.session.add(categories[name])

    db.session.flush()

    tasks = []
    for offset, (title, description, status, priority, due_in, creator, assignee, category) in enumerate(TASKS):
        task = Task(
            title=title,
            description=description,
            status=status,
            priority=priority,
            due_date=days_from_now(due_in, now) if due_in is not None else None,
            creator_id=users[creator].id,
            assignee_id=users[assignee].id,
            category_id=categories[category].id,
            created_at=now - timedelta(days=14, hours=offset)
        )
        tasks.append(task)
        db.session.add(task)

    db.session.flush()

    for index, author, content, hours_ago in COMMENTS:
        db.session.add(Comment(
            task_id=tasks[index].id,
            author_id=users[author].id,
            content=content,
            created_at=now - timedelta(hours=hours_ago)
        ))

    db.session.commit()

    counts = {
        'users': len(users),
        'categories': len(categories),
        'tasks': len(tasks),
        'comments': len(COMMENTS)
    }
    logger.info(f"Demo data seeded: {counts}")
    return counts


@click.command('seed-demo')
@click.option('--yes', is_flag=True, help='Skip the confirmation prompt.')
@with_appcontext
def seed_demo_command(yes):
    """Wipe the database and load demo data."""
    if not yes:
        click.confirm('This deletes all existing data. Continue?', abort=True)

    try:
        counts = seed_demo_data()
    except Exception:
        db.session.rollback()
        logger.error('Demo seeding failed', exc_info=True)
        raise

    click.echo(
        f"Created {counts['users']} users, {counts['categories']} categories, "
        f"{counts['tasks']} tasks and {counts['comments']} comments "
        f"(password: {DEMO_PASSWORD})"
    )
