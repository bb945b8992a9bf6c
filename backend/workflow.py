"""Article authoring workflow: draft -> pending -> published -> archived"""
from models import ARTICLE_STATUSES

REPORTER_STATUSES = ('draft', 'pending')
SUBMITTABLE_STATUSES = ('draft', 'archived')


def initial_status(role, requested=None):
    """Status a newly created article starts in"""
    if role == 'admin':
        return requested if requested in ARTICLE_STATUSES else 'draft'
    return requested if requested in REPORTER_STATUSES else 'draft'


def can_transition(role, current, target):
    """
    Whether a user with `role` may move an article from `current` to `target`.

    Admins may set any known status. Reporters may only move between
    draft and pending, or resubmit an archived article for review.
    """
    if target not in ARTICLE_STATUSES:
        return False
    if role == 'admin':
        return True
    if role != 'reporter':
        return False
    if target == current:
        return target in REPORTER_STATUSES
    if target == 'pending':
        return current in SUBMITTABLE_STATUSES
    if target == 'draft':
        return current == 'pending'
    return False


def can_submit(current):
    return current in SUBMITTABLE_STATUSES
