from decimal import Decimal

import django.contrib.auth.models
import django.contrib.auth.validators
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import core.models
import core.validators


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('email', models.EmailField(error_messages={'unique': 'A user with that email already exists.'}, help_text='Required. Enter a valid email address.', max_length=254, unique=True, verbose_name='email address')),
                ('phone_number', models.CharField(blank=True, default='', help_text='Optional. Enter phone number in international format.', max_length=20, validators=[core.validators.validate_phone_number], verbose_name='phone number')),
                ('user_type', models.CharField(choices=[('buyer', 'Buyer'), ('provider', 'Service Provider'), ('both', 'Buyer and Provider')], default='buyer', help_text='Whether the user posts needs, submits offers, or both.', max_length=10, verbose_name='user type')),
                ('profile_image', models.ImageField(blank=True, help_text='Optional. Upload a profile picture (max 5MB, formats: jpg, png, webp).', null=True, upload_to=core.models.user_profile_image_upload_path, validators=[core.validators.validate_profile_image], verbose_name='profile image')),
                ('rating', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Average of visible reviews received.', max_digits=3, validators=[django.core.validators.MinValueValidator(Decimal('0.00'), message='Rating cannot be negative.'), django.core.validators.MaxValueValidator(Decimal('5.00'), message='Rating cannot exceed 5.00.')], verbose_name='rating')),
                ('review_count', models.PositiveIntegerField(default=0, help_text='Number of visible reviews received.', verbose_name='review count')),
                ('fcm_token', models.CharField(blank=True, default='', help_text='Device token used for push notifications.', max_length=255, verbose_name='push token')),
                ('device_platform', models.CharField(blank=True, choices=[('ios', 'iOS'), ('android', 'Android'), ('web', 'Web')], default='', max_length=10, verbose_name='device platform')),
                ('enable_push_notifications', models.BooleanField(default=True, verbose_name='push notifications enabled')),
                ('created_at', models.DateTimeField(auto_now_add=True, help_text='Timestamp when the account was created.', verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the account was last updated.', verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['email'], name='user_email_idx'),
                    models.Index(fields=['user_type'], name='user_type_idx'),
                ],
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Category',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, unique=True, verbose_name='name')),
                ('name_tr', models.CharField(blank=True, default='', max_length=100, verbose_name='turkish name')),
                ('description', models.TextField(blank=True, default='', verbose_name='description')),
                ('icon_url', models.URLField(blank=True, default='', max_length=500, verbose_name='icon url')),
                ('is_active', models.BooleanField(default=True, verbose_name='active')),
                ('sort_order', models.PositiveIntegerField(default=0, verbose_name='sort order')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('parent', models.ForeignKey(blank=True, help_text='Parent category, empty for top-level categories', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='children', to='core.category')),
            ],
            options={
                'verbose_name': 'category',
                'verbose_name_plural': 'categories',
                'ordering': ['sort_order', 'name'],
            },
        ),
        migrations.CreateModel(
            name='Need',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=200, verbose_name='title')),
                ('description', models.TextField(verbose_name='description')),
                ('min_budget', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0.00'), message='Budget cannot be negative.')], verbose_name='minimum budget')),
                ('max_budget', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0.00'), message='Budget cannot be negative.')], verbose_name='maximum budget')),
                ('currency', models.CharField(default=core.models.default_currency, max_length=3, validators=[core.validators.validate_currency_code], verbose_name='currency')),
                ('latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True, validators=[django.core.validators.MinValueValidator(Decimal('-90')), django.core.validators.MaxValueValidator(Decimal('90'))], verbose_name='latitude')),
                ('longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True, validators=[django.core.validators.MinValueValidator(Decimal('-180')), django.core.validators.MaxValueValidator(Decimal('180'))], verbose_name='longitude')),
                ('address', models.CharField(blank=True, default='', max_length=500, verbose_name='address')),
                ('urgency', models.PositiveSmallIntegerField(choices=[(1, 'Flexible'), (2, 'Normal'), (3, 'Urgent')], default=2, verbose_name='urgency')),
                ('status', models.CharField(choices=[('active', 'Active'), ('in_progress', 'In Progress'), ('completed', 'Completed'), ('cancelled', 'Cancelled'), ('expired', 'Expired')], default='active', max_length=20, verbose_name='status')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('expires_at', models.DateTimeField(blank=True, null=True, verbose_name='expires at')),
                ('category', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='needs', to='core.category')),
                ('user', models.ForeignKey(help_text='Buyer who posted the need', on_delete=django.db.models.deletion.CASCADE, related_name='needs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'need',
                'verbose_name_plural': 'needs',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['status'], name='need_status_idx'),
                    models.Index(fields=['category'], name='need_category_idx'),
                    models.Index(fields=['user'], name='need_user_idx'),
                    models.Index(fields=['created_at'], name='need_created_idx'),
                    models.Index(fields=['expires_at'], name='need_expires_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='NeedImage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('image_url', models.URLField(max_length=500, verbose_name='image url')),
                ('alt_text', models.CharField(blank=True, default='', max_length=200, verbose_name='alt text')),
                ('sort_order', models.PositiveIntegerField(default=0, verbose_name='sort order')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('need', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='images', to='core.need')),
            ],
            options={
                'verbose_name': 'need image',
                'verbose_name_plural': 'need images',
                'ordering': ['sort_order', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Offer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('price', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.01'), message='Price must be greater than zero.')], verbose_name='price')),
                ('currency', models.CharField(default=core.models.default_currency, max_length=3, validators=[core.validators.validate_currency_code], verbose_name='currency')),
                ('description', models.TextField(verbose_name='description')),
                ('delivery_days', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1, message='Delivery days must be at least 1.')], verbose_name='delivery days')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('rejected', 'Rejected'), ('withdrawn', 'Withdrawn')], default='pending', max_length=20, verbose_name='status')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('need', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='offers', to='core.need')),
                ('provider', models.ForeignKey(help_text='Provider who submitted the offer', on_delete=django.db.models.deletion.CASCADE, related_name='offers', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'offer',
                'verbose_name_plural': 'offers',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['need', 'status'], name='offer_need_status_idx'),
                    models.Index(fields=['provider', 'status'], name='offer_provider_status_idx'),
                    models.Index(fields=['created_at'], name='offer_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='OfferImage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('image_url', models.URLField(max_length=500, verbose_name='image url')),
                ('alt_text', models.CharField(blank=True, default='', max_length=200, verbose_name='alt text')),
                ('sort_order', models.PositiveIntegerField(default=0, verbose_name='sort order')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('offer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='images', to='core.offer')),
            ],
            options={
                'verbose_name': 'offer image',
                'verbose_name_plural': 'offer images',
                'ordering': ['sort_order', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))], verbose_name='amount')),
                ('currency', models.CharField(default=core.models.default_currency, max_length=3, validators=[core.validators.validate_currency_code], verbose_name='currency')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('processing', 'Processing'), ('completed', 'Completed'), ('released', 'Released'), ('refunded', 'Refunded'), ('failed', 'Failed')], default='pending', max_length=20, verbose_name='status')),
                ('payment_gateway', models.CharField(choices=[('iyzico', 'Iyzico'), ('mock', 'Mock')], default='iyzico', max_length=20, verbose_name='payment gateway')),
                ('conversation_id', models.CharField(default=core.models.generate_conversation_id, help_text='Correlation id shared with the payment gateway', max_length=64, unique=True, verbose_name='conversation id')),
                ('payment_token', models.CharField(blank=True, default='', max_length=255, verbose_name='payment token')),
                ('gateway_transaction_id', models.CharField(blank=True, default='', max_length=255, verbose_name='gateway transaction id')),
                ('three_ds_html_content', models.TextField(blank=True, default='', verbose_name='3-D Secure HTML')),
                ('error_message', models.TextField(blank=True, default='', verbose_name='error message')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='metadata')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('completed_at', models.DateTimeField(blank=True, null=True, verbose_name='completed at')),
                ('released_at', models.DateTimeField(blank=True, null=True, verbose_name='released at')),
                ('refunded_at', models.DateTimeField(blank=True, null=True, verbose_name='refunded at')),
                ('offer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to='core.offer')),
                ('buyer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments_made', to=settings.AUTH_USER_MODEL)),
                ('provider', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments_received', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'transaction',
                'verbose_name_plural': 'transactions',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['offer', 'status'], name='txn_offer_status_idx'),
                    models.Index(fields=['buyer'], name='txn_buyer_idx'),
                    models.Index(fields=['provider'], name='txn_provider_idx'),
                    models.Index(fields=['status'], name='txn_status_idx'),
                    models.Index(fields=['created_at'], name='txn_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Review',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rating', models.PositiveSmallIntegerField(help_text='Rating from 1 to 5 stars', validators=[django.core.validators.MinValueValidator(1, message='Rating must be at least 1.'), django.core.validators.MaxValueValidator(5, message='Rating must be at most 5.')], verbose_name='rating')),
                ('comment', models.TextField(blank=True, default='', verbose_name='comment')),
                ('is_visible', models.BooleanField(default=True, verbose_name='visible')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('offer', models.ForeignKey(blank=True, help_text='Accepted offer being reviewed', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='reviews', to='core.offer')),
                ('reviewee', models.ForeignKey(help_text='User receiving the review', on_delete=django.db.models.deletion.CASCADE, related_name='reviews_received', to=settings.AUTH_USER_MODEL)),
                ('reviewer', models.ForeignKey(help_text='User writing the review', on_delete=django.db.models.deletion.CASCADE, related_name='reviews_given', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'review',
                'verbose_name_plural': 'reviews',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['reviewee', 'is_visible'], name='review_reviewee_visible_idx'),
                    models.Index(fields=['rating'], name='review_rating_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('reviewer', 'reviewee', 'offer'), name='unique_review_per_offer'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Message',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('content', models.TextField(verbose_name='content')),
                ('is_read', models.BooleanField(default=False, verbose_name='read')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('read_at', models.DateTimeField(blank=True, null=True, verbose_name='read at')),
                ('offer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='core.offer')),
                ('receiver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages_received', to=settings.AUTH_USER_MODEL)),
                ('sender', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages_sent', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'message',
                'verbose_name_plural': 'messages',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['offer', 'created_at'], name='message_offer_created_idx'),
                    models.Index(fields=['receiver', 'is_read'], name='message_receiver_read_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=200, verbose_name='title')),
                ('body', models.TextField(verbose_name='body')),
                ('notification_type', models.CharField(choices=[('new_offer', 'New Offer'), ('offer_accepted', 'Offer Accepted'), ('offer_rejected', 'Offer Rejected'), ('offer_withdrawn', 'Offer Withdrawn'), ('new_message', 'New Message'), ('need_expiring', 'Need Expiring'), ('payment', 'Payment'), ('system', 'System')], default='system', max_length=30, verbose_name='type')),
                ('data', models.JSONField(blank=True, default=dict, verbose_name='data')),
                ('is_read', models.BooleanField(default=False, verbose_name='read')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'notification',
                'verbose_name_plural': 'notifications',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['user', 'is_read'], name='notification_user_read_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SearchHistory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('query', models.CharField(max_length=200, verbose_name='query')),
                ('filters', models.JSONField(blank=True, default=dict, verbose_name='filters')),
                ('result_count', models.PositiveIntegerField(default=0, verbose_name='result count')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='search_history', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'search history entry',
                'verbose_name_plural': 'search history',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['query'], name='search_query_idx'),
                    models.Index(fields=['created_at'], name='search_created_idx'),
                ],
            },
        ),
    ]
