import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('core', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='UserBehavior',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action_type', models.CharField(choices=[('view_need', 'View Need'), ('view_offer', 'View Offer'), ('create_need', 'Create Need'), ('create_offer', 'Create Offer'), ('search', 'Search'), ('view_category', 'View Category'), ('contact_provider', 'Contact Provider'), ('accept_offer', 'Accept Offer'), ('reject_offer', 'Reject Offer'), ('share_need', 'Share Need'), ('save_need', 'Save Need'), ('report_content', 'Report Content')], max_length=30, verbose_name='action type')),
                ('target_id', models.PositiveIntegerField(blank=True, null=True, verbose_name='target id')),
                ('target_type', models.CharField(blank=True, choices=[('need', 'Need'), ('offer', 'Offer'), ('category', 'Category'), ('user', 'User')], default='', max_length=20, verbose_name='target type')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='metadata')),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True, verbose_name='IP address')),
                ('user_agent', models.CharField(blank=True, default='', max_length=500, verbose_name='user agent')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='behaviors', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'user behavior',
                'verbose_name_plural': 'user behaviors',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['user', 'created_at'], name='behavior_user_created_idx'),
                    models.Index(fields=['action_type'], name='behavior_action_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UserVerification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('verification_type', models.CharField(choices=[('email', 'Email'), ('phone', 'Phone'), ('identity', 'Identity'), ('business', 'Business')], max_length=20, verbose_name='type')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('in_review', 'In Review'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='pending', max_length=20, verbose_name='status')),
                ('target', models.CharField(blank=True, default='', help_text='Email address or phone number the code was sent to', max_length=254, verbose_name='target')),
                ('code_hash', models.CharField(blank=True, default='', max_length=128, verbose_name='code hash')),
                ('code_expires_at', models.DateTimeField(blank=True, null=True, verbose_name='code expires at')),
                ('attempt_count', models.PositiveIntegerField(default=0, verbose_name='failed attempts')),
                ('last_sent_at', models.DateTimeField(blank=True, null=True, verbose_name='last code sent at')),
                ('document_urls', models.JSONField(blank=True, default=list, verbose_name='document urls')),
                ('notes', models.TextField(blank=True, default='', verbose_name='notes')),
                ('review_notes', models.TextField(blank=True, default='', verbose_name='review notes')),
                ('reviewed_at', models.DateTimeField(blank=True, null=True, verbose_name='reviewed at')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('reviewed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='verifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'user verification',
                'verbose_name_plural': 'user verifications',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['user', 'verification_type'], name='verification_user_type_idx'),
                    models.Index(fields=['status'], name='verification_status_idx'),
                ],
            },
        ),
    ]
