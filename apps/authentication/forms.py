from django import forms
from django.contrib.auth.forms import UserCreationForm, UserChangeForm
from .models import User


class CustomUserCreationForm(UserCreationForm):
    """Admin user creation keyed on email; there is no username."""

    class Meta:
        model = User
        fields = ('email', 'first_name', 'last_name', 'is_staff')
        field_classes = {'email': forms.EmailField}


class CustomUserChangeForm(UserChangeForm):
    class Meta:
        model = User
        fields = '__all__'
