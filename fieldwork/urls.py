from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/cati/', include('fieldwork.apps.cati_core.urls')),
]
