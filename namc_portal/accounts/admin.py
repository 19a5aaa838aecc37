from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from .models import Member


@admin.register(Member)
class MemberAdmin(UserAdmin):
    list_display = ('email', 'first_name', 'last_name', 'member_type', 'company_name', 'is_staff', 'is_active')
    list_filter = ('member_type', 'is_staff', 'is_active')
    search_fields = ('email', 'first_name', 'last_name', 'company_name')
    ordering = ('email',)
    fieldsets = UserAdmin.fieldsets + (
        ('Membership', {'fields': ('member_type', 'company_name', 'phone_number', 'stripe_account_id')}),
    )
