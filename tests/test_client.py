import unittest
import sys
import os
from unittest import mock
from fastapi.testclient import TestClient
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import client as client_module
from client import LiftLogClient
from rest_api import LiftLogAPI

class ClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = 'test_client.db'
        self.yaml_path = 'test_client.yaml'
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.api = LiftLogAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        test_client = TestClient(self.api.app)
        patcher = mock.patch.object(client_module, 'requests', test_client)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.client = LiftLogClient(base_url='http://testserver/')

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def test_search_and_get(self) -> None:
        self.api.library_repo.upsert({'name': 'Goblet Squat', 'equipment': ['kettlebell']})
        self.api.library_repo.upsert({'name': 'Kettlebell Swing', 'equipment': ['kettlebell']})
        page = self.client.search_exercises(equipment=['kettlebell'], page_size=1)
        self.assertEqual([e['name'] for e in page['data']], ['Goblet Squat'])
        self.assertTrue(page['has_more'])
        page = self.client.search_exercises(
            cursor=tuple(page['cursor']), equipment=['kettlebell'], page_size=1
        )
        self.assertEqual([e['name'] for e in page['data']], ['Kettlebell Swing'])
        self.assertEqual(self.client.get_exercise('goblet_squat')['name'], 'Goblet Squat')

    def test_workouts_and_max_lifts(self) -> None:
        wid = self.client.create_workout(
            'u1',
            {'date': '2024-05-01', 'title': 'Legs', 'exercises': [{'name': 'Squat', 'sets': [{'reps': '5'}]}]},
        )
        self.assertIsInstance(wid, int)
        self.assertEqual(len(self.client.list_workouts('u1')), 1)
        done = self.client.complete_workout(wid, duration=40)
        self.assertTrue(done['is_completed'])
        self.assertEqual(done['duration'], 40)

        lid = self.client.add_max_lift('u1', 'Squat', 150)
        self.assertIsInstance(lid, int)
        lifts = self.client.max_lifts('u1')
        self.assertEqual(lifts[0]['exercise_name'], 'Squat')
        self.assertIsNone(lifts[0]['reps'])

if __name__ == '__main__':
    unittest.main()
