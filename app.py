# app.py - Field Survey Manager (Streamlit front-end)
import atexit
import logging

import pandas as pd
import streamlit as st

from fieldsurvey import export
from fieldsurvey.auth import AuthManager
from fieldsurvey.config import Config, configure_logging
from fieldsurvey.database import DatabaseManager
from fieldsurvey.errors import SurveyAppError
from fieldsurvey.models import QuestionType, Role, SurveyStatus
from fieldsurvey.policy import Action, Actor, SurveyResource, can_perform
from fieldsurvey.reports import ReportService, pie_chart, rating_frame, summary_frame
from fieldsurvey.responses import ResponseService
from fieldsurvey.schema import parse_options
from fieldsurvey.surveys import SurveyService
from fieldsurvey.users import UserService
from fieldsurvey.validation import missing_mandatory

configure_logging()
logger = logging.getLogger(__name__)

ROLE_PAGES = {
    Role.ADMINISTRATOR: [
        "Dashboard", "Manage Surveys", "Question Builder", "Take Survey",
        "Reports", "Manage Users", "Profile Settings", "Logout",
    ],
    Role.SURVEY_CREATOR: [
        "Dashboard", "Manage Surveys", "Question Builder", "Reports",
        "Profile Settings", "Logout",
    ],
    Role.DATA_ENTRY: ["Dashboard", "Take Survey", "Profile Settings", "Logout"],
}

STATUS_OPTIONS = [status.value for status in SurveyStatus]
ROLE_OPTIONS = [role.value for role in Role]
TYPE_OPTIONS = [question_type.value for question_type in QuestionType]


@st.cache_resource
def get_database() -> DatabaseManager:
    """One DatabaseManager per server process, shared by every session"""
    db = DatabaseManager(Config.MONGO_URI, Config.DATABASE_NAME)
    db.init_database()
    atexit.register(db.close)
    return db


# =============================================================================
# MAIN APPLICATION CLASS
# =============================================================================

class SurveyApp:
    """Main Survey Application"""

    def __init__(self):
        self.config = Config
        self.db = None

    def initialize(self):
        """Initialize the application"""
        st.set_page_config(
            page_title=self.config.APP_NAME,
            page_icon="📋",
            layout="wide",
            initial_sidebar_state="expanded"
        )
        try:
            self.config.validate()
            self.db = get_database()
            self.auth = AuthManager(self.config, self.db)
            self.surveys = SurveyService(self.db)
            self.users = UserService(self.db, self.auth, self.config)
            self.responses = ResponseService(self.db)
            self.reports = ReportService(self.db, self.config)

            if not st.session_state.get('seed_checked'):
                self.users.ensure_seed_admin()
                st.session_state.seed_checked = True
            return True
        except ValueError as e:
            logger.error(f"Invalid configuration: {str(e)}")
            st.error(f"Invalid configuration: {str(e)}")
            return False
        except SurveyAppError as e:
            logger.error(f"Application initialization failed: {e.message}")
            st.error(f"{e.title}: {e.message}")
            return False

    def run(self):
        """Main application runner"""
        if not self.initialize():
            return

        if 'actor' not in st.session_state:
            st.session_state.actor = None
        if 'navigation' not in st.session_state:
            st.session_state.navigation = None

        st.sidebar.title(f"📋 {self.config.APP_NAME}")
        st.sidebar.markdown("---")

        flash = st.session_state.pop('flash', None)
        if flash:
            st.success(flash)

        try:
            if st.session_state.actor is None:
                self._handle_guest_navigation()
            else:
                self._handle_role_navigation(st.session_state.actor)
        except SurveyAppError as e:
            self._show_error(e)

    @property
    def actor(self) -> Actor:
        return st.session_state.actor

    def _show_error(self, error: SurveyAppError):
        st.error(f"**{error.title}:** {error.message}")

    def _flash(self, message: str):
        """Show ``message`` after the next rerun"""
        st.session_state.flash = message
        st.rerun()

    def _handle_role_navigation(self, actor: Actor):
        """Sidebar pages for the logged-in user's role"""
        st.sidebar.caption(f"Logged in as **{actor.username}** ({actor.role.value})")

        pages = ROLE_PAGES[actor.role]
        if st.session_state.navigation in pages:
            page = st.session_state.navigation
            st.session_state.navigation = None
        else:
            page = st.sidebar.selectbox("Navigate", pages)

        if page == "Dashboard":
            self._dashboard()
        elif page == "Manage Surveys":
            self._manage_surveys()
        elif page == "Question Builder":
            self._question_builder()
        elif page == "Take Survey":
            self._take_survey()
        elif page == "Reports":
            self._reports()
        elif page == "Manage Users":
            self._manage_users()
        elif page == "Profile Settings":
            self._profile_settings()
        elif page == "Logout":
            self._logout()

    def _handle_guest_navigation(self):
        """Handle guest navigation"""
        page = st.sidebar.selectbox("Navigate", ["Login", "About"])

        if page == "Login":
            self._login()
        elif page == "About":
            self._about_page()

    # =========================================================================
    # LOGIN PAGES
    # =========================================================================

    def _login(self):
        """Login page"""
        st.title("🔐 Login")

        with st.form("login"):
            username = st.text_input("Username")
            password = st.text_input("Password", type="password")
            submit = st.form_submit_button("Login", type="primary")

        if submit:
            try:
                user = self.auth.authenticate(username, password)
            except SurveyAppError as e:
                self._show_error(e)
                return

            if user is None:
                st.error("Invalid username or password.")
                return

            st.session_state.actor = Actor.from_user(user)
            self._flash(f"Welcome, {user.username}!")

    def _about_page(self):
        """About page"""
        st.title(f"📋 About {self.config.APP_NAME}")
        st.caption(f"Version {self.config.APP_VERSION}")

        st.markdown("""
        ## Field survey management

        ### Roles:
        - 👑 **Administrator**: manages users and every survey, takes surveys, views all reports
        - 📝 **Survey Creator**: builds their own surveys and views their reports
        - 🗳️ **Data Entry**: fills in Active surveys

        ### Features:
        - 📝 **Question Builder**: text, single choice, multi choice and rating questions
        - ✅ **Mandatory Questions**: submissions are rejected until they are answered
        - 📊 **Reports**: response counts, answer charts and per-response tables
        - 📁 **Export**: CSV and Excel downloads
        """)

        st.info("Need an account? Contact your administrator.")

    def _logout(self):
        """Logout functionality"""
        username = self.actor.username if self.actor else 'Unknown'
        st.session_state.clear()
        logger.info(f"User {username} logged out")
        st.rerun()

    # =========================================================================
    # DASHBOARD
    # =========================================================================

    def _dashboard(self):
        st.title("🏠 Dashboard")
        st.write(f"Welcome **{self.actor.username}**, you are logged in as **{self.actor.role.value}**.")

        if can_perform(self.actor, Action.VIEW_REPORT):
            rows = self.reports.summary(self.actor)
            col1, col2, col3 = st.columns(3)
            with col1:
                st.metric("📋 Surveys", len(rows))
            with col2:
                st.metric("🟢 Active", len([r for r in rows if r.status == SurveyStatus.ACTIVE.value]))
            with col3:
                st.metric("💬 Responses", sum(r.total_responses for r in rows))

        available = self.responses.available_surveys(self.actor)
        if available:
            st.subheader("🗳️ Surveys open for responses")
            for survey in available:
                st.write(f"- **{survey.name}** ({survey.num_questions} questions)")

            if st.button("Take a survey"):
                st.session_state.navigation = "Take Survey"
                st.rerun()

    # =========================================================================
    # SURVEY MANAGEMENT
    # =========================================================================

    def _survey_frame(self, surveys) -> pd.DataFrame:
        return pd.DataFrame([{
            'Name': s.name,
            'Status': s.status.value,
            'Creator': s.creator,
            'Questions': s.num_questions,
            'Created': s.date_created.strftime('%Y-%m-%d') if s.date_created else 'N/A',
        } for s in surveys])

    def _manage_surveys(self):
        st.title("📝 Manage Surveys")

        surveys = self.surveys.list_for(self.actor)
        tab1, tab2 = st.tabs(["👀 Surveys", "➕ Create Survey"])

        with tab1:
            if not surveys:
                st.info("No surveys yet.")
            else:
                st.dataframe(self._survey_frame(surveys), use_container_width=True, hide_index=True)
                self._edit_survey(surveys)

        with tab2:
            with st.form("add_survey", clear_on_submit=True):
                name = st.text_input("Survey Name")
                status = st.selectbox("Status", STATUS_OPTIONS)
                submit = st.form_submit_button("✅ Create Survey", type="primary")

            if submit:
                try:
                    survey = self.surveys.create(self.actor, name, SurveyStatus(status))
                except SurveyAppError as e:
                    self._show_error(e)
                else:
                    self._flash(f"Survey '{survey.name}' created. Add its questions in the Question Builder.")

    def _edit_survey(self, surveys):
        st.subheader("Edit Survey")
        by_id = {s.id: s for s in surveys}
        survey_id = st.selectbox("Survey", list(by_id), format_func=lambda sid: by_id[sid].name,
                                 key="edit_survey_id")
        survey = by_id[survey_id]

        with st.form(f"edit_survey_{survey_id}"):
            name = st.text_input("Survey Name", value=survey.name)
            status = st.selectbox("Status", STATUS_OPTIONS, index=STATUS_OPTIONS.index(survey.status.value))
            update = st.form_submit_button("💾 Save Changes", type="primary")

        if update:
            try:
                self.surveys.edit(self.actor, survey_id, name, SurveyStatus(status))
            except SurveyAppError as e:
                self._show_error(e)
            else:
                self._flash(f"Survey '{name.strip()}' updated.")

        with st.expander("🗑️ Delete Survey"):
            st.warning("Deleting a survey removes its questions. Stored responses are kept.")
            confirm = st.checkbox(f"I want to delete '{survey.name}'", key=f"confirm_delete_{survey_id}")
            if st.button("Delete", disabled=not confirm, key=f"delete_{survey_id}"):
                try:
                    self.surveys.delete(self.actor, survey_id)
                except SurveyAppError as e:
                    self._show_error(e)
                else:
                    self._flash(f"Survey '{survey.name}' deleted.")

    # =========================================================================
    # QUESTION BUILDER
    # =========================================================================

    def _question_builder(self):
        st.title("🧱 Question Builder")

        surveys = [s for s in self.surveys.list_for(self.actor)
                   if can_perform(self.actor, Action.MANAGE_QUESTIONS, SurveyResource.from_survey(s))]
        if not surveys:
            st.info("Create a survey first.")
            return

        by_id = {s.id: s for s in surveys}
        survey_id = st.selectbox("Survey", list(by_id), format_func=lambda sid: by_id[sid].name,
                                 key="builder_survey_id")

        # unsaved edits live in the session until saved or discarded
        builder = st.session_state.get('builder')
        if builder is None or builder.survey.id != survey_id:
            builder = self.surveys.builder(self.actor, survey_id)
            st.session_state.builder = builder

        if builder.questions:
            st.dataframe(pd.DataFrame([{
                'ID': q.id,
                'Question': q.text,
                'Type': q.type.value if q.type else 'Unknown',
                'Options': ', '.join(q.options),
                'Mandatory': '✅' if q.mandatory else '',
            } for q in builder.questions]), use_container_width=True, hide_index=True)
        else:
            st.info("This survey has no questions yet.")

        tab1, tab2 = st.tabs(["➕ Add Question", "✏️ Edit Question"])
        with tab1:
            self._add_question(builder)
        with tab2:
            self._edit_question(builder)

        st.divider()
        col1, col2 = st.columns(2)
        with col1:
            if st.button("💾 Save Questions", type="primary", use_container_width=True):
                try:
                    survey = self.surveys.save_questions(self.actor, builder)
                except SurveyAppError as e:
                    self._show_error(e)
                else:
                    st.session_state.pop('builder', None)
                    self._flash(f"Saved {survey.num_questions} questions for '{survey.name}'.")
        with col2:
            if st.button("↩️ Discard Changes", use_container_width=True):
                st.session_state.pop('builder', None)
                st.rerun()

    def _add_question(self, builder):
        with st.form("add_question", clear_on_submit=True):
            text = st.text_input("Question Text")
            question_type = st.selectbox("Question Type", TYPE_OPTIONS)
            options = st.text_area("Options (one per line, choice questions only)")
            mandatory = st.checkbox("Mandatory")
            submit = st.form_submit_button("➕ Add Question")

        if submit:
            try:
                question = builder.add(text, QuestionType(question_type), parse_options(options), mandatory)
            except SurveyAppError as e:
                self._show_error(e)
            else:
                self._flash(f"Question {question.id} added. Save to keep it.")

    def _edit_question(self, builder):
        if not builder.questions:
            st.info("Nothing to edit.")
            return

        by_id = {q.id: q for q in builder.questions}
        question_id = st.selectbox("Question", list(by_id),
                                   format_func=lambda qid: f"{qid}: {by_id[qid].text}")
        question = by_id[question_id]
        type_index = TYPE_OPTIONS.index(question.type.value) if question.type else 0

        with st.form(f"edit_question_{question_id}"):
            text = st.text_input("Question Text", value=question.text)
            question_type = st.selectbox("Question Type", TYPE_OPTIONS, index=type_index)
            options = st.text_area("Options (one per line)", value='\n'.join(question.options))
            mandatory = st.checkbox("Mandatory", value=question.mandatory)
            update = st.form_submit_button("💾 Update Question")

        if update:
            try:
                builder.update(question_id, text, QuestionType(question_type), parse_options(options), mandatory)
            except SurveyAppError as e:
                self._show_error(e)
            else:
                self._flash(f"Question {question_id} updated. Save to keep it.")

        col1, col2, col3 = st.columns(3)
        with col1:
            if st.button("⬆️ Move Up", use_container_width=True):
                builder.move(question_id, -1)
                st.rerun()
        with col2:
            if st.button("⬇️ Move Down", use_container_width=True):
                builder.move(question_id, 1)
                st.rerun()
        with col3:
            if st.button("🗑️ Remove", use_container_width=True):
                builder.remove(question_id)
                st.rerun()

    # =========================================================================
    # SURVEY TAKING
    # =========================================================================

    def _take_survey(self):
        """Survey taking interface"""
        st.title("🗳️ Take Survey")

        available = self.responses.available_surveys(self.actor)
        if not available:
            st.info("No Active surveys are available right now.")
            return

        by_id = {s.id: s for s in available}
        survey_id = st.selectbox("Survey", list(by_id), format_func=lambda sid: by_id[sid].name,
                                 key="take_survey_id")
        survey = by_id[survey_id]
        form = self.responses.open_form(self.actor, survey_id)

        if not len(form):
            st.warning("This survey has no questions yet.")
            return

        progress_placeholder = st.empty()
        keys = []

        with st.form(f"survey_form_{survey_id}"):
            for i, control in enumerate(form, start=1):
                question = control.question
                st.markdown(f"### Question {i}")
                st.write(question.text + (" *" if question.mandatory else ""))
                key = f"answer_{survey_id}_{question.id}"

                if control.widget == 'radio':
                    form.set(question.id, st.radio(
                        "Answer", control.options, index=None, key=key, label_visibility="collapsed"
                    ))
                    keys.append(key)
                elif control.widget == 'checkbox':
                    checked = []
                    for j, option in enumerate(control.options):
                        option_key = f"{key}_{j}"
                        if st.checkbox(option, key=option_key):
                            checked.append(option)
                        keys.append(option_key)
                    form.set(question.id, checked)
                elif control.widget == 'rating':
                    form.set(question.id, st.text_input("Rating (e.g. 1-5)", key=key))
                    keys.append(key)
                else:
                    form.set(question.id, st.text_input("Answer", key=key, label_visibility="collapsed"))
                    keys.append(key)

                st.divider()

            st.caption("* mandatory")
            submit = st.form_submit_button("📤 Submit Survey", type="primary")

        answered = form.answered_count()
        progress_placeholder.progress(
            answered / len(form), text=f"Progress: {answered}/{len(form)} questions answered"
        )
        if answered and not submit:
            missing = missing_mandatory(form.questions, form.answers())
            if missing:
                st.caption("Still required: " + ", ".join(missing))

        if submit:
            try:
                self.responses.submit(self.actor, survey_id, form)
            except SurveyAppError as e:
                self._show_error(e)
                return

            for key in keys:
                st.session_state.pop(key, None)
            self._flash(f"🎉 Your response to '{survey.name}' has been submitted.")

    # =========================================================================
    # REPORTS
    # =========================================================================

    def _reports(self):
        """Summary, charts and per-response tables with downloads"""
        st.title("📊 Reports")

        rows = self.reports.summary(self.actor)
        if not rows:
            st.info("No surveys to report on.")
            return

        st.subheader("📋 Survey Summary")
        st.dataframe(summary_frame(rows), use_container_width=True, hide_index=True)
        st.download_button(
            label="📁 Download Summary CSV",
            data=export.summary_csv(rows),
            file_name=export.SUMMARY_FILENAME,
            mime="text/csv"
        )

        st.divider()

        names = {row.survey_id: row.name for row in rows}
        survey_id = st.selectbox("Survey", list(names), format_func=lambda sid: names[sid],
                                 key="report_survey_id")

        tab1, tab2 = st.tabs(["📈 Question Chart", "📄 Detailed Responses"])
        with tab1:
            self._question_chart(survey_id)
        with tab2:
            self._detailed_report(survey_id)

    def _question_chart(self, survey_id):
        questions = self.reports.chartable_questions(self.actor, survey_id)
        if not questions:
            st.info("This survey has no choice or rating questions to chart.")
            return

        by_id = {q.id: q for q in questions}
        question_id = st.selectbox("Question", list(by_id), format_func=lambda qid: by_id[qid].text,
                                   key=f"chart_question_{survey_id}")

        result, kind = self.reports.question_chart(self.actor, survey_id, question_id)
        if result.empty:
            st.info("No answers recorded for this question yet.")
            return

        if kind == 'bar':
            st.bar_chart(rating_frame(result))
        else:
            st.altair_chart(pie_chart(result), use_container_width=True)

        st.caption(f"{result.total_tallied} answers across {result.responses_scanned} responses")

    def _detailed_report(self, survey_id):
        report = self.reports.detailed(self.actor, survey_id)
        if not report.rows:
            st.info("No responses recorded for this survey yet.")
            return

        if report.stale_question_ids and self.config.STALE_ANSWER_POLICY == 'flag':
            st.warning(
                "Some responses answer questions that were removed from the survey: "
                + ', '.join(report.stale_question_ids)
            )

        st.dataframe(report.to_frame(), use_container_width=True, hide_index=True)

        col1, col2 = st.columns(2)
        with col1:
            st.download_button(
                label="📄 Download CSV",
                data=export.detailed_csv(report),
                file_name=export.export_filename(report.survey.name),
                mime="text/csv",
                use_container_width=True
            )
        with col2:
            st.download_button(
                label="📁 Download Excel",
                data=export.detailed_excel(report),
                file_name=export.export_filename(report.survey.name, '_Responses.xlsx'),
                mime=export.EXCEL_MIME,
                use_container_width=True
            )

    # =========================================================================
    # USER MANAGEMENT
    # =========================================================================

    def _manage_users(self):
        """User management interface"""
        st.title("👥 Manage Users")

        users = self.users.list_users(self.actor)
        tab1, tab2, tab3 = st.tabs(["👀 View Users", "➕ Add User", "✏️ Edit User"])

        with tab1:
            st.dataframe(pd.DataFrame([{'Username': u.username, 'Role': u.role.value} for u in users]),
                         use_container_width=True, hide_index=True)
            admins = len([u for u in users if u.role is Role.ADMINISTRATOR])
            st.caption(f"{admins}/{self.config.MAX_ADMINS} Administrator accounts in use")

        with tab2:
            with st.form("add_user", clear_on_submit=True):
                username = st.text_input("👤 Username")
                password = st.text_input("🔐 Password", type="password")
                role = st.selectbox("Role", ROLE_OPTIONS)
                submit = st.form_submit_button("✅ Create User", type="primary")

            if submit:
                try:
                    user = self.users.add_user(self.actor, username, password, Role(role))
                except SurveyAppError as e:
                    self._show_error(e)
                else:
                    self._flash(f"User '{user.username}' created as {user.role.value}.")

        with tab3:
            self._edit_user(users)

    def _edit_user(self, users):
        by_name = {u.username: u for u in users}
        original = st.selectbox("User", list(by_name), key="edit_user_name")
        user = by_name[original]

        with st.form(f"edit_user_{original}"):
            username = st.text_input("Username", value=user.username)
            role = st.selectbox("Role", ROLE_OPTIONS, index=ROLE_OPTIONS.index(user.role.value))
            password = st.text_input("New Password", type="password", help="Leave blank to keep the current password")
            update = st.form_submit_button("💾 Save Changes", type="primary")

        if update:
            try:
                updated = self.users.edit_user(self.actor, original, username, Role(role), password)
            except SurveyAppError as e:
                self._show_error(e)
            else:
                if original == self.actor.username:
                    st.session_state.actor = Actor(updated.username, updated.role)
                self._flash(f"User '{updated.username}' updated.")

        with st.expander("🗑️ Delete User"):
            confirm = st.checkbox(f"I want to delete '{original}'", key=f"confirm_delete_user_{original}")
            if st.button("Delete", disabled=not confirm, key=f"delete_user_{original}"):
                try:
                    self.users.delete_user(self.actor, original)
                except SurveyAppError as e:
                    self._show_error(e)
                else:
                    self._flash(f"User '{original}' deleted.")

    # =========================================================================
    # PROFILE SETTINGS
    # =========================================================================

    def _profile_settings(self):
        st.title("⚙️ Profile Settings")
        st.write(f"**Username:** {self.actor.username}")
        st.write(f"**Role:** {self.actor.role.value}")

        col1, col2 = st.columns(2)
        with col1:
            st.subheader("Change Username")
            with st.form("change_username", clear_on_submit=True):
                new_username = st.text_input("New Username")
                current = st.text_input("Current Password", type="password")
                submit_username = st.form_submit_button("Update Username")

            if submit_username:
                try:
                    st.session_state.actor = self.users.change_username(self.actor, new_username, current)
                except SurveyAppError as e:
                    self._show_error(e)
                else:
                    self._flash(f"Username changed to '{self.actor.username}'.")

        with col2:
            st.subheader("Change Password")
            with st.form("change_password", clear_on_submit=True):
                current = st.text_input("Current Password", type="password")
                new = st.text_input("New Password", type="password")
                confirm = st.text_input("Confirm New Password", type="password")
                submit_password = st.form_submit_button("Update Password")

            if submit_password:
                try:
                    self.users.change_password(self.actor, current, new, confirm)
                except SurveyAppError as e:
                    self._show_error(e)
                else:
                    self._flash("Password updated.")


# =============================================================================
# MAIN APPLICATION ENTRY POINT
# =============================================================================

def main():
    """Application entry point"""
    app = SurveyApp()
    app.run()


if __name__ == "__main__":
    main()

# =============================================================================
# INSTALLATION AND SETUP INSTRUCTIONS
# =============================================================================

# 1. Start MongoDB (the app connects to mongodb://localhost:27017/ by default)
#
# 2. Create a .env file (optional, for configuration):
#    ```
#    MONGO_URI=mongodb://localhost:27017/
#    DATABASE_NAME=FieldSurveyDB
#    SEED_ADMIN_USERNAME=admin
#    SEED_ADMIN_PASSWORD=your_secure_password_here
#    MAX_ADMINS=3
#    STALE_ANSWER_POLICY=tolerate
#    LOG_FILE=survey_app.log
#    DEBUG_MODE=False
#    ```
#
# 3. Install the application:
#    ```bash
#    pip install -e .
#    ```
#
# 4. Run the application:
#    ```bash
#    streamlit run app.py
#    ```
#
# 5. Log in as 'admin' with the seed password (default 'admin123', change this!)
#
# TROUBLESHOOTING:
# 1. "Database connection failed": check that MongoDB is running and MONGO_URI
# 2. "Invalid configuration": STALE_ANSWER_POLICY must be tolerate, drop or flag
#
# For support, check the application logs in 'survey_app.log'
