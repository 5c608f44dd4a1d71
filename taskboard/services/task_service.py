"""
Task service: the task store, the owner-scoped query pipeline and the
create/complete mutations.
"""
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, col, select

from taskboard.core.logging import get_logger
from taskboard.models.task import Task, TaskStatus
from taskboard.models.user import User
from taskboard.schemas.task import AdminTaskRow, TaskCreate, TaskFilters
from taskboard.schemas.token import AuthContext

logger = get_logger(__name__)


class TaskService:
    """
    Service for managing tasks on behalf of an authenticated identity.
    """

    def __init__(self, session: Session):
        self.session = session

    def create_task(self, identity: AuthContext, task_in: TaskCreate) -> Task:
        """
        Create a task owned by ``identity``.

        The owner's display name is copied onto the task. Status always
        starts as Pending and the timestamp is set at insert.
        """
        task = Task(
            title=task_in.title,
            description=task_in.description,
            status=TaskStatus.PENDING,
            user_id=identity.id,
            user_name=identity.name,
        )
        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)
        logger.info(f"Created task {task.id} for user {identity.id}")
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        """Get a task by ID."""
        return self.session.get(Task, task_id)

    def _filtered(self, identity: AuthContext, filters: TaskFilters):
        """
        Build the scoped, filtered, ordered statement.
        Returns None when the status filter cannot match anything.
        """
        query = select(Task)

        if not identity.is_admin:
            query = query.where(Task.user_id == identity.id)

        if filters.status:
            try:
                status = TaskStatus(filters.status)
            except ValueError:
                return None
            query = query.where(Task.status == status)

        if filters.search:
            query = query.where(
                func.lower(Task.title).contains(filters.search.lower(), autoescape=True)
            )

        if filters.sort_order == "desc":
            query = query.order_by(Task.created_at.desc())
        else:
            query = query.order_by(Task.created_at.asc())

        return query

    def query_tasks(self, identity: AuthContext, filters: Optional[TaskFilters] = None) -> List[Task]:
        """
        List the tasks visible to ``identity``.

        Non-admins only ever see their own tasks; admins see everyone's.
        The whole result is materialised.

        Args:
            identity: The caller's authorization context
            filters: Optional status / title search / sort order

        Returns:
            Matching tasks ordered by creation time
        """
        query = self._filtered(identity, filters or TaskFilters())
        if query is None:
            return []
        return list(self.session.exec(query))

    def list_with_owners(self, identity: AuthContext, filters: Optional[TaskFilters] = None) -> List[AdminTaskRow]:
        """Same as ``query_tasks`` with each owner's current name resolved."""
        tasks = self.query_tasks(identity, filters)
        owner_ids = {task.user_id for task in tasks}
        names = {}
        if owner_ids:
            rows = self.session.exec(select(User.id, User.name).where(col(User.id).in_(owner_ids)))
            names = {user_id: name for user_id, name in rows}
        return [AdminTaskRow(task=task, owner_name=names.get(task.user_id)) for task in tasks]

    def complete_task(self, task_id: str, actor: Optional[AuthContext] = None) -> None:
        """
        Mark a task Completed.

        Any caller may complete any task and repeating the call is harmless.
        Unknown ids are ignored. ``actor`` is only used for logging.
        """
        task = self.get_task(task_id)
        if task is None:
            logger.info(f"Ignoring completion of unknown task {task_id}")
            return

        if actor is not None and task.user_id != actor.id:
            logger.warning(f"User {actor.id} completed task {task_id} owned by {task.user_id}")

        task.status = TaskStatus.COMPLETED
        self.session.add(task)
        self.session.commit()
        logger.info(f"Task {task_id} marked completed")
