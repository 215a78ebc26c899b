from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # --- Authentication & profile ---
    path('api/', include('users.urls')),

    # --- Student Exam Flow ---
    path('api/', include('assessments.urls')),

    # --- Late access codes ---
    path('api/', include('late_access.urls')),

    # --- Audit trail (admin) ---
    path('api/admin/', include('cores.urls')),

    # --- Exam & question management (router) ---
    path('api/', include('exams.urls')),
]
