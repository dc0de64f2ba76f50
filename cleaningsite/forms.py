"""Flask-WTF forms describing each public submission's schema.

The JSON API feeds decoded payloads in as form data, so CSRF protection is
switched off here; rate limiting and the honeypot stand in for it.
"""
import re
from datetime import date

from flask_wtf import FlaskForm
from wtforms import BooleanField, DateField, IntegerField, SelectMultipleField, StringField, TextAreaField
from wtforms.validators import AnyOf, DataRequired, Length, NumberRange, Optional, Regexp, ValidationError

from .utils import is_valid_email

PHONE_RE = re.compile(r"^[+]?[(]?[0-9]{3}[)]?[-\s.]?[0-9]{3}[-\s.]?[0-9]{4,6}$")
ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")
NAME_RE = re.compile(r"^[a-zA-Z\s'-]+$")
HONEYPOT_FIELD = 'website'

FACILITY_TYPE_LABELS = {
    'office': 'Office/Corporate',
    'medical': 'Medical Facility',
    'education': 'Educational Facility',
    'manufacturing': 'Manufacturing',
    'warehouse': 'Warehouse/Distribution',
    'retail': 'Retail/Showroom',
    'property-management': 'Property Management',
    'other': 'Other',
}
CLEANING_FREQUENCY_LABELS = {
    'daily': 'Daily',
    '2-3x-week': '2-3 times per week',
    'weekly': 'Weekly',
    'bi-weekly': 'Bi-weekly (every 2 weeks)',
    'monthly': 'Monthly',
    'one-time': 'One-time cleaning',
}
SERVICE_LABELS = {
    'office-cleaning': 'Office & Commercial Cleaning',
    'janitorial-services': 'Janitorial Services',
    'floor-carpet-care': 'Floor/Carpet Care',
    'window-cleaning': 'Window Cleaning',
    'post-construction': 'Post-Construction Cleaning',
    'supply-management': 'Supply Management',
}
FEEDBACK_VOTES = ('yes', 'no')


class EmailAddress:
    def __init__(self, message='Please enter a valid email address'):
        self.message = message

    def __call__(self, form, field):
        if not is_valid_email(field.data or ''):
            raise ValidationError(self.message)


class NotInPast:
    def __init__(self, message='Start date must be today or in the future'):
        self.message = message

    def __call__(self, form, field):
        if field.data and field.data < date.today():
            raise ValidationError(self.message)


def format_phone_number(phone):
    digits = re.sub(r'\D', '', phone or '')
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    if len(digits) == 11 and digits.startswith('1'):
        return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
    return phone or ''


def _lower(value):
    return value.lower() if isinstance(value, str) else value


class _BaseSubmissionForm(FlaskForm):
    class Meta:
        csrf = False


_name_validators = [
    DataRequired(message='Name is required'),
    Length(min=2, max=100, message='Name must be between 2 and 100 characters'),
    Regexp(NAME_RE, message='Name can only contain letters, spaces, hyphens, and apostrophes'),
]
_email_validators = [DataRequired(message='Email is required'), Length(max=200), EmailAddress()]
_phone_validators = [
    DataRequired(message='Phone number is required'),
    Regexp(PHONE_RE, message='Please enter a valid phone number (e.g., 555-123-4567)'),
]
_honeypot_validators = [Optional(), Length(max=0, message='Invalid submission')]


class ContactForm(_BaseSubmissionForm):
    name = StringField('Name', validators=_name_validators)
    email = StringField('Email', validators=_email_validators, filters=[_lower])
    phone = StringField('Phone', validators=_phone_validators)
    message = TextAreaField('Message', validators=[
        DataRequired(message='Message is required'),
        Length(min=10, max=1000, message='Message must be between 10 and 1000 characters'),
    ])
    website = StringField('Website', validators=_honeypot_validators)


class QuoteForm(_BaseSubmissionForm):
    full_name = StringField('Full name', validators=_name_validators)
    company = StringField('Company', validators=[
        DataRequired(message='Company name is required'),
        Length(min=2, max=200, message='Company name must be between 2 and 200 characters'),
    ])
    email = StringField('Email', validators=_email_validators, filters=[_lower])
    phone = StringField('Phone', validators=_phone_validators)
    address = StringField('Address', validators=[
        DataRequired(message='Address is required'),
        Length(min=5, max=200, message='Address must be between 5 and 200 characters'),
    ])
    city = StringField('City', validators=[
        DataRequired(message='City is required'),
        Length(min=2, max=100, message='City must be between 2 and 100 characters'),
    ])
    zip_code = StringField('ZIP code', validators=[
        DataRequired(message='ZIP code is required'),
        Regexp(ZIP_RE, message='Please enter a valid ZIP code (e.g., 01089 or 01089-1234)'),
    ])
    square_footage = IntegerField('Square footage', validators=[
        Optional(),
        NumberRange(min=1, message='Square footage must be a positive number'),
    ])
    facility_type = StringField('Facility type', validators=[
        DataRequired(message='Please select a facility type'),
        AnyOf(list(FACILITY_TYPE_LABELS), message='Please select a facility type'),
    ])
    cleaning_frequency = StringField('Cleaning frequency', validators=[
        DataRequired(message='Please select a cleaning frequency'),
        AnyOf(list(CLEANING_FREQUENCY_LABELS), message='Please select a cleaning frequency'),
    ])
    desired_start_date = DateField('Desired start date', validators=[Optional(), NotInPast()])
    services = SelectMultipleField(
        'Services',
        choices=list(SERVICE_LABELS.items()),
        validators=[DataRequired(message='Please select at least one service')],
    )
    special_requests = TextAreaField('Special requests', validators=[
        Optional(),
        Length(max=500, message='Special requests must be less than 500 characters'),
    ])
    consent = BooleanField('Consent', validators=[
        DataRequired(message='You must agree to be contacted to submit this quote request'),
    ])
    website = StringField('Website', validators=_honeypot_validators)


class NewsletterForm(_BaseSubmissionForm):
    email = StringField('Email', validators=_email_validators, filters=[_lower])


class CareerForm(_BaseSubmissionForm):
    first_name = StringField('First name', validators=[
        DataRequired(message='First name is required'),
        Length(min=2, max=100, message='First name is required'),
    ])
    last_name = StringField('Last name', validators=[
        DataRequired(message='Last name is required'),
        Length(min=2, max=100, message='Last name is required'),
    ])
    email = StringField('Email', validators=_email_validators, filters=[_lower])
    phone = StringField('Phone', validators=[
        DataRequired(message='Phone number is required'),
        Length(min=10, max=40, message='Please enter a valid phone number'),
    ])
    applying_for = StringField('Applying for', validators=[Optional(), Length(max=200)])
    message = TextAreaField('Message', validators=[
        Optional(),
        Length(max=2000, message='Message must be less than 2000 characters'),
    ])


class FeedbackForm(_BaseSubmissionForm):
    page_id = StringField('Page', validators=[DataRequired(message='Page is required'), Length(min=1, max=200)])
    vote = StringField('Vote', validators=[
        DataRequired(message='Vote is required'),
        AnyOf(FEEDBACK_VOTES, message='Vote must be yes or no'),
    ])
    feedback = TextAreaField('Feedback', validators=[Optional(), Length(max=500)])
