"""
Task visibility, ordering and mutation rules

Ranking and authorization are pure functions over already-fetched rows;
visibility builds SQLAlchemy expressions for the caller to run. The list,
detail and stats endpoints all share these rules.
"""

from datetime import datetime

from sqlalchemy import and_, case, func, or_, true

from errors import ForbiddenError, NotFoundError
from models import Role, Task, TaskPriority, TaskStatus, db, utcnow

PRIORITY_RANK = {
    TaskPriority.HIGH.value: 0,
    TaskPriority.MEDIUM.value: 1,
    TaskPriority.LOW.value: 2,
}

# Unknown priorities sort after LOW
UNKNOWN_PRIORITY_RANK = len(PRIORITY_RANK)

FILTER_FIELDS = ('status', 'priority', 'category_id', 'assignee_id')

_EPOCH = datetime(1970, 1, 1)


# ============================================
# Visibility
# ============================================

def is_admin(role):
    return role == Role.ADMIN


def visible_tasks_clause(user_id, role):
    """
    Base read scope for a requester

    Admins see every task; everyone else sees tasks they created or are
    assigned to.
    """
    if is_admin(role):
        return true()
    return or_(Task.creator_id == user_id, Task.assignee_id == user_id)


def search_clause(search):
    """Case-insensitive substring match on title OR description; % and _ are literal"""
    return or_(
        Task.title.icontains(search, autoescape=True),
        Task.description.icontains(search, autoescape=True)
    )


def task_filter_clause(user_id, role, filters=None):
    """
    Full WHERE clause for the task list

    The visibility scope is always ANDed with the rest, so neither the
    equality filters nor the search can widen what a non-admin sees.
    """
    filters = filters or {}
    clauses = [visible_tasks_clause(user_id, role)]

    for field in FILTER_FIELDS:
        value = filters.get(field)
        if value is not None:
            clauses.append(getattr(Task, field) == value)

    search = filters.get('search')
    if search:
        clauses.append(search_clause(search))

    return and_(*clauses)


def can_view_task(task, user_id, role):
    if is_admin(role):
        return True
    return task.creator_id == user_id or task.assignee_id == user_id


def get_visible_task(task_id, user_id, role):
    """
    Load a task the requester may read

    Tasks outside the requester's scope are reported as missing rather
    than forbidden.
    """
    task = db.session.get(Task, task_id)
    if task is None or not can_view_task(task, user_id, role):
        raise NotFoundError.for_resource('Task', task_id)
    return task


# ============================================
# Ranking
# ============================================

def is_overdue(task, now=None):
    """Due date in the past and not DONE; never persisted"""
    if task.due_date is None or task.status == TaskStatus.DONE:
        return False
    now = now or utcnow()
    return task.due_date < now


def priority_rank(priority):
    return PRIORITY_RANK.get(priority, UNKNOWN_PRIORITY_RANK)


def task_sort_key(task, now):
    """
    Composite sort key

    Groups: overdue (0), upcoming with a due date (1), no due date (2).
    Dated groups order by priority then earliest due date; the undated
    group orders by priority then newest created_at.
    """
    rank = priority_rank(task.priority)

    if is_overdue(task, now):
        return (0, rank, task.due_date)
    if task.due_date is not None:
        return (1, rank, task.due_date)

    created_at = task.created_at or _EPOCH
    # timedelta shrinks as created_at grows, so newer tasks come first
    return (2, rank, _EPOCH - created_at)


def rank_tasks(tasks, now=None):
    """Stable sort of already-filtered tasks; `now` is fixed for the whole call"""
    now = now or utcnow()
    return sorted(tasks, key=lambda task: task_sort_key(task, now))


# ============================================
# Mutation authorization
# ============================================

def authorize_task_update(task, user_id, role, changes):
    """
    Raise unless the requester may apply `changes` to `task`

    Admins may change anything. Creators and assignees may edit, but a
    non-admin can only (re)assign the task to themselves.
    """
    if task is None:
        raise NotFoundError('Task not found')

    if is_admin(role):
        return

    if task.creator_id != user_id and task.assignee_id != user_id:
        raise ForbiddenError('You can only update tasks you created or are assigned to')

    if 'assignee_id' in changes:
        new_assignee = changes['assignee_id']
        if new_assignee != task.assignee_id and new_assignee != user_id:
            raise ForbiddenError('You can only assign tasks to yourself')


def authorize_task_delete(task, user_id, role):
    """Creators and admins may delete; assignees may not"""
    if task is None:
        raise NotFoundError('Task not found')

    if is_admin(role):
        return

    if task.creator_id != user_id:
        raise ForbiddenError('You can only delete tasks you created')


# ============================================
# Statistics
# ============================================

def task_stats(user_id, role, now=None):
    """Status and overdue counts over the requester's visibility scope"""
    now = now or utcnow()
    overdue = and_(Task.due_date.isnot(None), Task.due_date < now, Task.status != TaskStatus.DONE.value)

    row = db.session.query(
        func.count(Task.id).label('total'),
        func.sum(case((Task.status == TaskStatus.TODO.value, 1), else_=0)).label('todo'),
        func.sum(case((Task.status == TaskStatus.IN_PROGRESS.value, 1), else_=0)).label('in_progress'),
        func.sum(case((Task.status == TaskStatus.DONE.value, 1), else_=0)).label('done'),
        func.sum(case((overdue, 1), else_=0)).label('overdue')
    ).filter(visible_tasks_clause(user_id, role)).one()

    return {
        'total': row.total or 0,
        'todo': row.todo or 0,
        'inProgress': row.in_progress or 0,
        'done': row.done or 0,
        'overdue': row.overdue or 0
    }
