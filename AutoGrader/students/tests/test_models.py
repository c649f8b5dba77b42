from django.db import IntegrityError
from django.test import TestCase

from students.models import Student


class StudentModelTests(TestCase):
    def test_save_normalizes_fields(self):
        student = Student.objects.create(name="  Ada Lovelace ", email=" Ada@Example.COM ", github_username=" ada ")
        student.refresh_from_db()
        self.assertEqual(student.name, "Ada Lovelace")
        self.assertEqual(student.email, "ada@example.com")
        self.assertEqual(student.github_username, "ada")
        self.assertTrue(student.is_active)
        self.assertEqual(str(student), "Ada Lovelace (ada)")

    def test_email_is_unique_after_normalization(self):
        Student.objects.create(name="Ada", email="ada@example.com", github_username="ada")
        with self.assertRaises(IntegrityError):
            Student.objects.create(name="Ada 2", email="ADA@example.com", github_username="ada2")
