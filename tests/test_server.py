"""Tests for the ExpenseSync.server API, run against an in-memory mongomock database."""
import datetime
import unittest
from unittest import mock

import mongomock
from bson import ObjectId
from fastapi.testclient import TestClient

from ExpenseSync.server import security
from ExpenseSync.server.app import create_app
from ExpenseSync.server.database import EXPENSES, USERS


class ServerTestCase(unittest.TestCase):

    def setUp(self) -> None:
        self.db = mongomock.MongoClient()['expense_tracker_test']
        self.client = self.enterContext(TestClient(create_app(db=self.db)))

    def register(self, email='ada@example.com', name='Ada', password='secret'):
        response = self.client.post('/api/auth/register', json={'name': name, 'email': email, 'password': password})
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def auth_headers(self, email='ada@example.com'):
        return {'Authorization': f'Bearer {self.register(email=email)["token"]}'}

    def create(self, headers, **fields):
        body = {'amount': 12.5, 'category': 'Food', 'description': 'Lunch', 'date': '2024-03-01T12:00:00.000Z'}
        body.update(fields)
        return self.client.post('/api/expenses', json=body, headers=headers)


class AuthRoutesTest(ServerTestCase):

    def test_health(self):
        self.assertEqual(self.client.get('/api/health').json(), {'status': 'ok'})

    def test_register(self):
        body = self.register(email='Ada@Example.com ')
        self.assertTrue(body['token'])
        self.assertEqual(body['user']['email'], 'ada@example.com')
        self.assertEqual(body['user']['name'], 'Ada')

        stored = self.db[USERS].find_one({'email': 'ada@example.com'})
        self.assertNotEqual(stored['password'], 'secret')
        self.assertTrue(security.verify_password('secret', stored['password']))

    def test_register_twice(self):
        self.register()
        response = self.client.post('/api/auth/register',
                                    json={'name': 'Ada', 'email': 'ada@example.com', 'password': 'x'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'message': 'User already exists'})

    def test_register_requires_all_fields(self):
        response = self.client.post('/api/auth/register', json={'email': 'ada@example.com'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'message': 'All fields are required'})

    def test_login(self):
        registered = self.register()
        response = self.client.post('/api/auth/login', json={'email': 'ADA@example.com', 'password': 'secret'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['user'], registered['user'])

    def test_login_rejects_bad_credentials(self):
        self.register()
        for body in ({'email': 'ada@example.com', 'password': 'wrong'},
                     {'email': 'nobody@example.com', 'password': 'secret'},
                     {'email': 'ada@example.com'}):
            response = self.client.post('/api/auth/login', json=body)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {'message': 'Invalid credentials'})

    def test_me(self):
        headers = self.auth_headers()
        response = self.client.get('/api/auth/me', headers=headers)
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['email'], 'ada@example.com')
        self.assertIn('id', body)
        self.assertNotIn('password', body)
        self.assertNotIn('_id', body)

    def test_me_requires_token(self):
        response = self.client.get('/api/auth/me')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {'message': 'No token provided'})

        response = self.client.get('/api/auth/me', headers={'Authorization': 'Bearer garbage'})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {'message': 'Invalid token'})

    def test_expired_token(self):
        user_id = self.register()['user']['id']
        token = security.create_token(user_id, expires_delta=datetime.timedelta(seconds=-1))
        response = self.client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
        self.assertEqual(response.status_code, 401)

    def test_me_of_deleted_user(self):
        token = security.create_token(str(ObjectId()))
        response = self.client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {'message': 'User not found'})

    def test_reset_password(self):
        self.register()
        response = self.client.post('/api/auth/reset-password', json={'email': 'ada@example.com'})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['message'], 'Password reset email sent')
        self.assertEqual(security.decode_token(body['resetToken'])['userId'],
                         str(self.db[USERS].find_one()['_id']))

        stored = self.db[USERS].find_one()
        self.assertEqual(stored['resetPasswordToken'], body['resetToken'])
        self.assertNotIn('resetPasswordToken', self.client.get('/api/auth/me', headers={
            'Authorization': f'Bearer {body["resetToken"]}'
        }).json())

    def test_reset_password_errors(self):
        response = self.client.post('/api/auth/reset-password', json={})
        self.assertEqual((response.status_code, response.json()['message']), (400, 'Email is required'))

        response = self.client.post('/api/auth/reset-password', json={'email': 'nobody@example.com'})
        self.assertEqual((response.status_code, response.json()['message']), (404, 'User not found'))


class ExpenseRoutesTest(ServerTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.headers = self.auth_headers()

    def test_requires_token(self):
        self.assertEqual(self.client.get('/api/expenses').status_code, 401)
        self.assertEqual(self.client.post('/api/expenses', json={}).status_code, 401)

    def test_create(self):
        response = self.create(self.headers)
        self.assertEqual(response.status_code, 201, response.text)
        body = response.json()
        self.assertTrue(ObjectId.is_valid(body['id']))
        self.assertEqual(body['amount'], 12.5)
        self.assertTrue(body['isSynced'])
        self.assertEqual(body['date'], '2024-03-01T12:00:00.000Z')
        self.assertNotIn('_id', body)

        stored = self.db[EXPENSES].find_one({'_id': ObjectId(body['id'])})
        self.assertIsInstance(stored['date'], datetime.datetime)
        self.assertIsInstance(stored['userId'], ObjectId)

    def test_create_allows_empty_description(self):
        response = self.create(self.headers, description=None)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['description'], '')

    def test_create_validation(self):
        for fields, message in (
                ({'category': ''}, 'All fields are required'),
                ({'date': None}, 'All fields are required'),
                ({'amount': None}, 'All fields are required'),
                ({'amount': 0}, 'Amount must be greater than zero'),
                ({'amount': -4}, 'Amount must be greater than zero'),
                ({'date': 'next tuesday'}, 'Invalid date'),
        ):
            with self.subTest(fields=fields):
                response = self.create(self.headers, **fields)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json(), {'message': message})

    def test_create_with_wrong_type(self):
        response = self.create(self.headers, amount='a lot')
        self.assertEqual(response.status_code, 400)
        self.assertIn('amount', response.json()['message'])

    def test_list_is_newest_first_and_per_user(self):
        self.create(self.headers, date='2024-03-01T00:00:00Z', description='old')
        self.create(self.headers, date='2024-03-05T00:00:00Z', description='new')
        self.create(self.auth_headers('bob@example.com'), description='bob')

        response = self.client.get('/api/expenses', headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual([e['description'] for e in response.json()], ['new', 'old'])

    def test_range(self):
        for day in (1, 10, 20):
            self.create(self.headers, date=f'2024-03-{day:02d}T00:00:00Z', description=str(day))

        response = self.client.get('/api/expenses/range', headers=self.headers,
                                   params={'startDate': '2024-03-01', 'endDate': '2024-03-10'})
        self.assertEqual([e['description'] for e in response.json()], ['10', '1'])

        response = self.client.get('/api/expenses/range', headers=self.headers, params={'startDate': '2024-03-01'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'message': 'Start date and end date are required'})

    def test_category(self):
        self.create(self.headers, category='Food')
        self.create(self.headers, category='Eating out')

        response = self.client.get('/api/expenses/category/Eating%20out', headers=self.headers)
        self.assertEqual([e['category'] for e in response.json()], ['Eating out'])

    def test_update(self):
        expense_id = self.create(self.headers).json()['id']

        response = self.client.put(f'/api/expenses/{expense_id}', headers=self.headers,
                                   json={'amount': 20, 'description': 'Dinner'})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual((body['amount'], body['description'], body['category']), (20.0, 'Dinner', 'Food'))
        self.assertEqual(self.db[EXPENSES].find_one({'_id': ObjectId(expense_id)})['amount'], 20.0)

        response = self.client.put(f'/api/expenses/{expense_id}', headers=self.headers, json={'amount': -1})
        self.assertEqual(response.status_code, 400)

    def test_delete(self):
        expense_id = self.create(self.headers).json()['id']

        response = self.client.delete(f'/api/expenses/{expense_id}', headers=self.headers)
        self.assertEqual(response.json(), {'message': 'Expense deleted'})
        self.assertEqual(self.db[EXPENSES].count_documents({}), 0)

        response = self.client.delete(f'/api/expenses/{expense_id}', headers=self.headers)
        self.assertEqual(response.status_code, 404)

    def test_unknown_and_foreign_ids_answer_404(self):
        expense_id = self.create(self.headers).json()['id']
        other = self.auth_headers('bob@example.com')

        for target, headers in ((expense_id, other), ('abc', self.headers), (str(ObjectId()), self.headers)):
            with self.subTest(target=target):
                response = self.client.put(f'/api/expenses/{target}', headers=headers, json={'amount': 1})
                self.assertEqual(response.status_code, 404)
                self.assertEqual(response.json(), {'message': 'Expense not found'})
                response = self.client.delete(f'/api/expenses/{target}', headers=headers)
                self.assertEqual(response.status_code, 404)

        self.assertEqual(self.db[EXPENSES].count_documents({}), 1)

    def test_summary(self):
        now = datetime.datetime.now()
        self.create(self.headers, amount=10, category='Food', date=now.isoformat())
        self.create(self.headers, amount=5.5, category='Transportation', date=now.isoformat())
        self.create(self.headers, amount=99, category='Food', date=(now - datetime.timedelta(days=800)).isoformat())

        response = self.client.get('/api/expenses/summary', headers=self.headers, params={'timeFrame': 'day'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {
            'totalAmount': 15.5,
            'categoryBreakdown': {'Food': 10.0, 'Transportation': 5.5},
            'timeFrame': 'day',
        })

    def test_summary_requires_valid_time_frame(self):
        for params in ({}, {'timeFrame': 'decade'}):
            response = self.client.get('/api/expenses/summary', headers=self.headers, params=params)
            self.assertEqual(response.status_code, 400)
            self.assertIn('timeFrame', response.json()['message'])


class UnhandledErrorTest(unittest.TestCase):

    def test_unexpected_errors_answer_500(self):
        db = mock.MagicMock()
        db.__getitem__.return_value.find.side_effect = RuntimeError('database exploded')
        client = self.enterContext(TestClient(create_app(db=db), raise_server_exceptions=False))

        token = security.create_token(str(ObjectId()))
        response = client.get('/api/expenses', headers={'Authorization': f'Bearer {token}'})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {'message': 'Something went wrong!'})


class EntryPointTest(unittest.TestCase):

    def test_run_serves_with_the_shared_logging_setup(self):
        with mock.patch('ExpenseSync.server.database.get_database',
                        return_value=mongomock.MongoClient()['expense_tracker_test']):
            from ExpenseSync.server import main

        with mock.patch.object(main.uvicorn, 'run') as run, \
                mock.patch.object(main.log, 'setup_server_logging') as setup:
            main.run()

        setup.assert_called_once_with()
        args, kwargs = run.call_args
        self.assertIs(args[0], main.app)
        self.assertIsNone(kwargs['log_config'])
