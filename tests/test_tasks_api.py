"""Task endpoints: visibility, filters, ranking, mutation rules and stats."""

from datetime import timedelta

from models import db, Comment, Notification, Task


def titles(response):
    return [t['title'] for t in response.get_json()['tasks']]


class TestCreateTask:

    def test_create_with_defaults(self, client, alice, headers_for):
        response = client.post('/tasks', json={'title': 'Write docs'}, headers=headers_for(alice))

        assert response.status_code == 201
        data = response.get_json()
        assert data['title'] == 'Write docs'
        assert data['status'] == 'TODO'
        assert data['priority'] == 'MEDIUM'
        assert data['creatorId'] == alice.id
        assert data['creator']['name'] == 'Alice'
        assert data['assignee'] is None
        assert data['dueDate'] is None
        assert data['isOverdue'] is False
        assert data['commentCount'] == 0

    def test_create_with_all_fields(self, client, alice, bob, headers_for, make_category):
        category = make_category('Design', '#EC4899')
        response = client.post('/tasks', json={
            'title': 'Mockups',
            'description': 'Dashboard wireframes',
            'status': 'IN_PROGRESS',
            'priority': 'HIGH',
            'dueDate': '2030-01-01T17:00:00Z',
            'assigneeId': bob.id,
            'categoryId': category.id
        }, headers=headers_for(alice))

        assert response.status_code == 201
        data = response.get_json()
        assert data['assignee']['id'] == bob.id
        assert data['category'] == {'id': category.id, 'name': 'Design', 'color': '#EC4899'}
        assert data['dueDate'] == '2030-01-01T17:00:00'

    def test_create_notifies_other_assignee(self, client, alice, bob, headers_for):
        client.post('/tasks', json={'title': 'Review', 'assigneeId': bob.id}, headers=headers_for(alice))

        notifications = Notification.query.filter_by(user_id=bob.id).all()
        assert [n.type for n in notifications] == ['task_assigned']
        assert Notification.query.filter_by(user_id=alice.id).count() == 0

    def test_self_assignment_sends_no_notification(self, client, alice, headers_for):
        client.post('/tasks', json={'title': 'Mine', 'assigneeId': alice.id}, headers=headers_for(alice))
        assert Notification.query.count() == 0

    def test_missing_title(self, client, alice, headers_for):
        response = client.post('/tasks', json={'priority': 'HIGH'}, headers=headers_for(alice))

        assert response.status_code == 400
        data = response.get_json()
        assert data['error'] == 'validation_failed'
        assert 'title' in data['details']

    def test_invalid_status_and_priority(self, client, alice, headers_for):
        response = client.post('/tasks', json={
            'title': 'x', 'status': 'BLOCKED', 'priority': 'URGENT'
        }, headers=headers_for(alice))

        assert response.status_code == 400
        details = response.get_json()['details']
        assert 'status' in details
        assert 'priority' in details

    def test_title_too_long(self, client, alice, headers_for):
        response = client.post('/tasks', json={'title': 'x' * 201}, headers=headers_for(alice))
        assert response.status_code == 400

    def test_unknown_field_rejected(self, client, alice, headers_for):
        response = client.post('/tasks', json={'title': 'x', 'creatorId': 42}, headers=headers_for(alice))
        assert response.status_code == 400

    def test_missing_assignee_and_category(self, client, alice, headers_for):
        response = client.post('/tasks', json={
            'title': 'x', 'assigneeId': 999, 'categoryId': 888
        }, headers=headers_for(alice))

        assert response.status_code == 400
        details = response.get_json()['details']
        assert details['assigneeId'] == ['User with ID 999 not found']
        assert details['categoryId'] == ['Category with ID 888 not found']
        assert Task.query.count() == 0

    def test_non_json_body(self, client, alice, headers_for):
        response = client.post('/tasks', data='title=x', headers=headers_for(alice))
        assert response.status_code == 400

    def test_requires_token(self, client):
        response = client.post('/tasks', json={'title': 'x'})
        assert response.status_code == 401
        assert response.get_json()['error'] == 'authorization_required'


class TestListVisibility:

    def test_non_admin_sees_created_and_assigned(self, client, alice, bob, carol, headers_for, make_task):
        make_task(alice, 'alice-own')
        make_task(bob, 'bob-to-alice', assignee_id=alice.id)
        make_task(bob, 'bob-own')
        make_task(carol, 'carol-to-bob', assignee_id=bob.id)

        response = client.get('/tasks', headers=headers_for(alice))

        assert response.status_code == 200
        assert sorted(titles(response)) == ['alice-own', 'bob-to-alice']
        assert response.get_json()['total'] == 2

    def test_admin_sees_everything(self, client, admin, alice, bob, headers_for, make_task):
        make_task(alice, 'a')
        make_task(bob, 'b')

        response = client.get('/tasks', headers=headers_for(admin))
        assert sorted(titles(response)) == ['a', 'b']

    def test_search_does_not_widen_visibility(self, client, alice, bob, headers_for, make_task):
        make_task(alice, 'Fix login bug')
        make_task(bob, 'Login redesign')
        make_task(bob, 'Other', description='login screen copy')

        response = client.get('/tasks?search=login', headers=headers_for(alice))
        assert titles(response) == ['Fix login bug']

    def test_search_matches_title_or_description_case_insensitive(self, client, alice, headers_for, make_task):
        make_task(alice, 'API docs')
        make_task(alice, 'Cleanup', description='Remove the old Api client')
        make_task(alice, 'Unrelated')

        response = client.get('/tasks?search=aPi', headers=headers_for(alice))
        assert sorted(titles(response)) == ['API docs', 'Cleanup']

    def test_search_treats_like_wildcards_literally(self, client, alice, headers_for, make_task):
        make_task(alice, 'Plain title')
        make_task(alice, 'Discount 50% off')
        make_task(alice, 'abc')
        make_task(alice, 'snake_case rename')
        headers = headers_for(alice)

        assert titles(client.get('/tasks?search=%25', headers=headers)) == ['Discount 50% off']
        assert titles(client.get('/tasks?search=_', headers=headers)) == ['snake_case rename']
        assert titles(client.get('/tasks?search=a_c', headers=headers)) == []

    def test_results_are_subset_of_unfiltered(self, client, alice, bob, headers_for, make_task):
        make_task(alice, 'a', status='DONE', priority='HIGH')
        make_task(alice, 'b', status='TODO', priority='HIGH')
        make_task(bob, 'c', status='DONE', priority='HIGH', assignee_id=alice.id)
        make_task(bob, 'd', status='DONE', priority='HIGH')

        headers = headers_for(alice)
        everything = set(titles(client.get('/tasks', headers=headers)))
        for query in ('status=DONE', 'priority=HIGH', f'assigneeId={alice.id}', 'search=a'):
            assert set(titles(client.get(f'/tasks?{query}', headers=headers))) <= everything

    def test_equality_filters(self, client, admin, alice, bob, headers_for, make_task, make_category):
        design = make_category('Design')
        make_task(alice, 'match', status='IN_PROGRESS', priority='LOW',
                  assignee_id=bob.id, category_id=design.id)
        make_task(alice, 'wrong-status', status='TODO', priority='LOW',
                  assignee_id=bob.id, category_id=design.id)
        make_task(alice, 'wrong-assignee', status='IN_PROGRESS', priority='LOW',
                  assignee_id=alice.id, category_id=design.id)
        make_task(alice, 'no-category', status='IN_PROGRESS', priority='LOW', assignee_id=bob.id)

        response = client.get(
            f'/tasks?status=IN_PROGRESS&priority=LOW&assigneeId={bob.id}&categoryId={design.id}',
            headers=headers_for(admin)
        )
        assert titles(response) == ['match']

    def test_invalid_filter_value(self, client, alice, headers_for):
        response = client.get('/tasks?status=BLOCKED', headers=headers_for(alice))
        assert response.status_code == 400

    def test_comment_count_included(self, client, alice, headers_for, make_task):
        task = make_task(alice, 'discussed')
        db.session.add_all([
            Comment(task_id=task.id, author_id=alice.id, content='one'),
            Comment(task_id=task.id, author_id=alice.id, content='two'),
        ])
        db.session.commit()

        response = client.get('/tasks', headers=headers_for(alice))
        assert response.get_json()['tasks'][0]['commentCount'] == 2


class TestListRanking:

    def test_overdue_then_dated_then_undated(self, client, alice, headers_for, make_task,
                                             yesterday, tomorrow):
        make_task(alice, 'medium-undated', priority='MEDIUM')
        make_task(alice, 'low-tomorrow', priority='LOW', due_date=tomorrow)
        make_task(alice, 'high-yesterday', priority='HIGH', due_date=yesterday)

        response = client.get('/tasks', headers=headers_for(alice))

        assert titles(response) == ['high-yesterday', 'low-tomorrow', 'medium-undated']
        flags = [t['isOverdue'] for t in response.get_json()['tasks']]
        assert flags == [True, False, False]

    def test_done_task_is_not_flagged_overdue(self, client, alice, headers_for, make_task, yesterday):
        make_task(alice, 'shipped', status='DONE', due_date=yesterday)

        task = client.get('/tasks', headers=headers_for(alice)).get_json()['tasks'][0]
        assert task['isOverdue'] is False

    def test_undated_newest_first(self, client, alice, headers_for, make_task, now):
        make_task(alice, 'old', created_at=now - timedelta(days=2))
        make_task(alice, 'new', created_at=now - timedelta(hours=1))

        response = client.get('/tasks', headers=headers_for(alice))
        assert titles(response) == ['new', 'old']


class TestTaskDetail:

    def test_creator_sees_detail_with_comments(self, client, alice, bob, headers_for, make_task, now):
        task = make_task(alice, 'detail', assignee_id=bob.id)
        db.session.add_all([
            Comment(task_id=task.id, author_id=alice.id, content='first', created_at=now - timedelta(hours=2)),
            Comment(task_id=task.id, author_id=bob.id, content='second', created_at=now - timedelta(hours=1)),
        ])
        db.session.commit()

        response = client.get(f'/tasks/{task.id}', headers=headers_for(alice))

        assert response.status_code == 200
        data = response.get_json()
        assert data['commentCount'] == 2
        assert [c['content'] for c in data['comments']] == ['second', 'first']
        assert data['comments'][0]['author']['name'] == 'Bob'

    def test_invisible_task_is_not_found(self, client, alice, carol, headers_for, make_task):
        task = make_task(alice, 'private')

        response = client.get(f'/tasks/{task.id}', headers=headers_for(carol))

        assert response.status_code == 404
        assert response.get_json()['message'] == f'Task with ID {task.id} not found'

    def test_admin_sees_any_detail(self, client, admin, alice, headers_for, make_task):
        task = make_task(alice, 'private')
        assert client.get(f'/tasks/{task.id}', headers=headers_for(admin)).status_code == 200

    def test_missing_task(self, client, alice, headers_for):
        assert client.get('/tasks/999', headers=headers_for(alice)).status_code == 404


class TestUpdateTask:

    def test_creator_updates_fields(self, client, alice, headers_for, make_task):
        task = make_task(alice, 'draft')

        response = client.patch(f'/tasks/{task.id}', json={
            'title': 'final', 'status': 'IN_PROGRESS'
        }, headers=headers_for(alice))

        assert response.status_code == 200
        data = response.get_json()
        assert data['task']['title'] == 'final'
        assert data['task']['status'] == 'IN_PROGRESS'
        assert data['changes']['title'] == {'old': 'draft', 'new': 'final'}

    def test_assignee_may_update(self, client, alice, bob, headers_for, make_task):
        task = make_task(alice, 'shared', assignee_id=bob.id)

        response = client.patch(f'/tasks/{task.id}', json={'status': 'DONE'}, headers=headers_for(bob))

        assert response.status_code == 200
        assert response.get_json()['task']['status'] == 'DONE'

    def test_stranger_is_forbidden(self, client, alice, carol, headers_for, make_task):
        task = make_task(alice, 'private')

        response = client.patch(f'/tasks/{task.id}', json={'title': 'x'}, headers=headers_for(carol))

        assert response.status_code == 403
        assert db.session.get(Task, task.id).title == 'private'

    def test_non_admin_cannot_assign_third_party(self, client, alice, bob, headers_for, make_task):
        task = make_task(alice, 'mine')

        response = client.patch(f'/tasks/{task.id}', json={'assigneeId': bob.id}, headers=headers_for(alice))

        assert response.status_code == 403
        assert response.get_json()['message'] == 'You can only assign tasks to yourself'
        assert db.session.get(Task, task.id).assignee_id is None

    def test_non_admin_can_assign_self(self, client, alice, bob, headers_for, make_task):
        task = make_task(alice, 'mine', assignee_id=bob.id)

        response = client.patch(f'/tasks/{task.id}', json={'assigneeId': alice.id}, headers=headers_for(alice))

        assert response.status_code == 200
        assert response.get_json()['task']['assigneeId'] == alice.id

    def test_admin_assigns_anyone(self, client, admin, alice, bob, headers_for, make_task):
        task = make_task(alice, 'mine')

        response = client.patch(f'/tasks/{task.id}', json={'assigneeId': bob.id}, headers=headers_for(admin))

        assert response.status_code == 200
        types = {(n.user_id, n.type) for n in Notification.query.all()}
        assert (bob.id, 'task_assigned') in types
        assert (alice.id, 'task_updated') in types

    def test_null_due_date_clears_it(self, client, alice, headers_for, make_task, tomorrow):
        task = make_task(alice, 'dated', due_date=tomorrow)

        response = client.patch(f'/tasks/{task.id}', json={'dueDate': None}, headers=headers_for(alice))

        assert response.status_code == 200
        assert response.get_json()['task']['dueDate'] is None
        assert db.session.get(Task, task.id).due_date is None

    def test_absent_due_date_is_untouched(self, client, alice, headers_for, make_task, tomorrow):
        task = make_task(alice, 'dated', due_date=tomorrow)

        client.patch(f'/tasks/{task.id}', json={'title': 'renamed'}, headers=headers_for(alice))

        assert db.session.get(Task, task.id).due_date is not None

    def test_creator_id_cannot_change(self, client, alice, bob, headers_for, make_task):
        task = make_task(alice, 'mine')

        response = client.patch(f'/tasks/{task.id}', json={'creatorId': bob.id}, headers=headers_for(alice))

        assert response.status_code == 400
        assert db.session.get(Task, task.id).creator_id == alice.id

    def test_no_changes(self, client, alice, headers_for, make_task):
        task = make_task(alice, 'same')

        response = client.patch(f'/tasks/{task.id}', json={'title': 'same'}, headers=headers_for(alice))

        assert response.status_code == 200
        assert response.get_json()['message'] == 'No changes to update'

    def test_missing_task(self, client, alice, headers_for):
        response = client.patch('/tasks/999', json={'title': 'x'}, headers=headers_for(alice))
        assert response.status_code == 404

    def test_notifies_other_party_not_actor(self, client, alice, bob, headers_for, make_task):
        task = make_task(alice, 'shared', assignee_id=bob.id)

        client.patch(f'/tasks/{task.id}', json={'priority': 'HIGH'}, headers=headers_for(bob))

        assert [(n.user_id, n.type) for n in Notification.query.all()] == [(alice.id, 'task_updated')]


class TestDeleteTask:

    def test_creator_deletes(self, client, alice, bob, headers_for, make_task):
        task = make_task(alice, 'gone', assignee_id=bob.id)
        db.session.add(Comment(task_id=task.id, author_id=bob.id, content='note'))
        db.session.commit()
        task_id = task.id

        response = client.delete(f'/tasks/{task_id}', headers=headers_for(alice))

        assert response.status_code == 200
        assert db.session.get(Task, task_id) is None
        assert Comment.query.count() == 0
        deleted = Notification.query.filter_by(user_id=bob.id, type='task_deleted').one()
        assert deleted.task_id is None

    def test_assignee_is_forbidden(self, client, alice, bob, headers_for, make_task):
        task = make_task(alice, 'kept', assignee_id=bob.id)

        response = client.delete(f'/tasks/{task.id}', headers=headers_for(bob))

        assert response.status_code == 403
        assert db.session.get(Task, task.id) is not None

    def test_admin_deletes_any(self, client, admin, alice, headers_for, make_task):
        task = make_task(alice, 'gone')
        assert client.delete(f'/tasks/{task.id}', headers=headers_for(admin)).status_code == 200

    def test_missing_task(self, client, alice, headers_for):
        assert client.delete('/tasks/999', headers=headers_for(alice)).status_code == 404


class TestStats:

    def test_counts_within_visibility(self, client, alice, bob, headers_for, make_task, yesterday, tomorrow):
        make_task(alice, 'todo-overdue', status='TODO', due_date=yesterday)
        make_task(alice, 'progress', status='IN_PROGRESS', due_date=tomorrow)
        make_task(bob, 'done-past', status='DONE', due_date=yesterday, assignee_id=alice.id)
        make_task(bob, 'invisible', status='TODO', due_date=yesterday)

        stats = client.get('/tasks/stats', headers=headers_for(alice)).get_json()

        assert stats == {'total': 3, 'todo': 1, 'inProgress': 1, 'done': 1, 'overdue': 1}

    def test_admin_counts_everything(self, client, admin, alice, bob, headers_for, make_task):
        make_task(alice, 'a')
        make_task(bob, 'b', status='DONE')

        stats = client.get('/tasks/stats', headers=headers_for(admin)).get_json()

        assert stats['total'] == 2
        assert stats['total'] == stats['todo'] + stats['inProgress'] + stats['done']

    def test_empty(self, client, alice, headers_for):
        stats = client.get('/tasks/stats', headers=headers_for(alice)).get_json()
        assert stats == {'total': 0, 'todo': 0, 'inProgress': 0, 'done': 0, 'overdue': 0}
