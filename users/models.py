# assessment_platform/users/models.py
from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    class Role(models.TextChoices):
        STUDENT = "student", "Student"
        TEACHER = "teacher", "Teacher"
        INSPECTOR = "inspector", "Inspector"
        SUPERVISOR = "supervisor", "Supervisor"
        PRINCIPAL = "principal", "Principal"
        ADMIN = "admin", "Admin"

    # Roles allowed to issue late-access codes (still subject to exam ownership)
    STAFF_ROLES = (Role.TEACHER, Role.INSPECTOR, Role.SUPERVISOR, Role.PRINCIPAL)

    # Enforce unique email for authentication
    email = models.EmailField(unique=True)

    role = models.CharField(max_length=20, choices=Role.choices, default=Role.STUDENT)
    phone_number = models.CharField(max_length=15, blank=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username', 'first_name', 'last_name']

    def __str__(self):
        return self.email

    @property
    def is_inspector(self):
        return self.role == self.Role.INSPECTOR

    @property
    def is_exam_staff(self):
        return self.role in self.STAFF_ROLES
