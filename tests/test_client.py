import unittest
import sys
import os
from unittest import mock
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from client import FitnessClient

class ClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.client = FitnessClient(base_url='http://testserver/')

    def test_login_stores_token(self) -> None:
        with mock.patch('client.requests.post') as post:
            post.return_value.json.return_value = {'success': True, 'token': 'ab12'}
            self.assertEqual(self.client.login('athlete', 'pw'), 'ab12')
        post.assert_called_once_with(
            'http://testserver/api/login',
            json={'user': 'athlete', 'password': 'pw', 'location': 'web'},
        )
        self.assertEqual(self.client.token, 'ab12')

    def test_muscles_sends_token(self) -> None:
        self.client.token = 'ab12'
        with mock.patch('client.requests.post') as post:
            post.return_value.json.return_value = {'success': True, 'muscles': {'Chest': 2}}
            self.assertEqual(self.client.muscles(7), {'Chest': 2})
        self.assertEqual(post.call_args.kwargs['headers'], {'X-Token': 'ab12'})

    def test_admin_tables(self) -> None:
        self.client.token = 'ab12'
        with mock.patch('client.requests.get') as get:
            get.return_value.json.return_value = {'success': True, 'tables': ['user']}
            self.assertEqual(self.client.admin_tables(), ['user'])

if __name__ == '__main__':
    unittest.main()
